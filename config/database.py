"""DATABASE_URL assembly for environments configured with DB_* components."""
from sqlalchemy.engine import URL


class DatabaseConfigError(ValueError):
    pass


def get_database_url(
    driver: str,
    host: str | None,
    port: int,
    user: str | None,
    password: str | None,
    name: str | None,
) -> str:
    """
    Build a SQLAlchemy URL from its parts.

    User and password are escaped, so secrets containing '@', ':' or '/'
    survive the round trip.

    Example:
        >>> get_database_url("postgresql+asyncpg", "db", 5432, "audit", "p@ss", "audit")
        'postgresql+asyncpg://audit:p%40ss@db:5432/audit'
    """
    missing = [label for label, value in (("DB_HOST", host), ("DB_NAME", name)) if not value]
    if missing:
        raise DatabaseConfigError(f"Missing database settings: {', '.join(missing)}")

    url = URL.create(
        drivername=driver,
        username=user,
        password=password,
        host=host,
        port=port,
        database=name,
    )
    return url.render_as_string(hide_password=False)
