import logging

import pymongo

from depextract.db.mongodb import get_database

logger = logging.getLogger(__name__)


async def create_indexes(db):
    """Creates indexes for all collections the extraction pipeline touches.

    The unique indexes carry the natural-key invariants: concurrent jobs rely
    on them to turn a racing insert into a duplicate-key error instead of a
    second row.
    """
    logger.info("Creating database indexes...")

    # Extraction jobs (worker queue)
    await db["extraction_jobs"].create_index(
        [("status", pymongo.ASCENDING), ("created_at", pymongo.ASCENDING)]
    )
    await db["extraction_jobs"].create_index("project_id")
    await db["extraction_jobs"].create_index("organization_id")

    # Global dependency catalog
    await db["dependencies"].create_index("name", unique=True)
    await db["dependency_versions"].create_index(
        [("dependency_id", pymongo.ASCENDING), ("version", pymongo.ASCENDING)],
        unique=True,
    )
    await db["dependency_version_edges"].create_index(
        [
            ("parent_version_id", pymongo.ASCENDING),
            ("child_version_id", pymongo.ASCENDING),
        ],
        unique=True,
    )
    await db["dependency_version_edges"].create_index("child_version_id")

    # Per-project snapshot
    await db["project_dependencies"].create_index("project_id")
    await db["project_dependencies"].create_index(
        [("project_id", pymongo.ASCENDING), ("name", pymongo.ASCENDING)]
    )

    # Vulnerabilities
    await db["project_dependency_vulnerabilities"].create_index(
        [
            ("project_id", pymongo.ASCENDING),
            ("project_dependency_id", pymongo.ASCENDING),
            ("osv_id", pymongo.ASCENDING),
        ],
        unique=True,
    )

    # Step logs
    await db["extraction_logs"].create_index(
        [("project_id", pymongo.ASCENDING), ("run_id", pymongo.ASCENDING)]
    )
    await db["extraction_logs"].create_index([("created_at", pymongo.DESCENDING)])

    # Project status
    await db["project_repositories"].create_index("project_id", unique=True)

    logger.info("Database indexes created.")


async def init_db():
    db = await get_database()
    await create_indexes(db)
