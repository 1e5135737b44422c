import os
from typing import Optional

from neo4j import GraphDatabase

from app.config import load_env_file

_driver = None


def get_driver():
    """Return the process-wide Neo4j driver, creating it on first use."""
    global _driver
    if _driver is None:
        uri, user, pwd = _get_neo4j_config()
        try:
            _driver = GraphDatabase.driver(uri, auth=(user, pwd))
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create Neo4j driver for URI '{uri}'. Check that the database is running and the credentials are correct.\nError: {exc}"
            ) from exc
    return _driver


def close_driver():
    global _driver
    if _driver is not None:
        _driver.close()
        _driver = None


def run_cypher(query: str, parameters: Optional[dict] = None):
    """Run a Cypher statement and return list of records as dicts."""
    driver = get_driver()
    with driver.session() as session:
        result = session.run(query, parameters or {})
        return [record.data() for record in result]


def _get_neo4j_config():
    """Return (uri, user, password) for the event store; only the password has no default."""
    load_env_file()

    uri = os.getenv("NEO4J_URI") or "bolt://localhost:7687"
    user = os.getenv("NEO4J_USER") or "neo4j"
    pwd = os.getenv("NEO4J_PASSWORD")
    if not pwd:
        raise RuntimeError(
            "NEO4J_PASSWORD is not set. Define it in your environment or in a .env file at the project root, "
            "e.g. export NEO4J_URI=bolt://localhost:7687 NEO4J_USER=neo4j NEO4J_PASSWORD=your_password"
        )
    return uri, user, pwd
