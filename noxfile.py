import nox

PYTHON_VERSIONS = ["3.11", "3.12", "3.13"]
LATEST = PYTHON_VERSIONS[-1]


def _install(session: nox.Session, *extras: str) -> None:
    """Install the marketplace package with the test group into the session virtualenv."""
    session.run("poetry", "install", "--with", "test", *extras, external=True)


def _pytest(session: nox.Session, *args: str) -> None:
    session.run("pytest", *args, *session.posargs)


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Full suite on every supported interpreter."""
    _install(session)
    _pytest(session)


@nox.session(python=LATEST)
def domain(session: nox.Session) -> None:
    """Aggregates, value objects and pure rules only."""
    _install(session)
    _pytest(session, "-m", "domain")


@nox.session(python=LATEST)
def pipeline(session: nox.Session) -> None:
    """Command handlers and the locked pipeline entry points."""
    _install(session)
    _pytest(session, "-m", "application")


@nox.session(python=LATEST)
def integration(session: nox.Session) -> None:
    """HTTP API, BDD scenarios and end-to-end settlement flows."""
    _install(session)
    _pytest(session, "-m", "integration")


@nox.session(python=LATEST)
def postgres(session: nox.Session) -> None:
    """Create and drop the production schema against $DATABASE_URL."""
    _install(session, "--all-extras")
    session.env["PROTEAN_ENV"] = "production"
    session.run("python", "src/manage.py", "setup-db")
    session.run("python", "src/manage.py", "drop-db")
