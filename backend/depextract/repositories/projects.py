"""
Project Status Repository

Reads the project's scoring context and writes the extraction status fields
the dashboard polls (``project_repositories``) and the dependency count on
``projects``.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from depextract.core import utc_now
from depextract.models.project import ProjectContext

logger = logging.getLogger(__name__)


class ProjectStatus:
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    READY = "ready"
    ERROR = "error"


class ProjectRepository:
    """Repository for project records and their extraction status."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.projects = db.projects
        self.repositories = db.project_repositories

    async def get_context(self, project_id: str) -> ProjectContext:
        """Scoring context for a project; unknown projects get the default tier."""
        doc = await self.projects.find_one(
            {"_id": project_id},
            {"_id": 1, "organization_id": 1, "asset_tier": 1, "tier_multiplier": 1},
        )
        if doc is None:
            logger.debug(f"Project {project_id} not found; using default asset tier")
            return ProjectContext(_id=project_id)
        return ProjectContext(**doc)

    async def _update_repository(self, project_id: str, fields: Dict[str, Any]) -> None:
        fields["updated_at"] = utc_now()
        await self.repositories.update_one(
            {"project_id": project_id}, {"$set": fields}, upsert=True
        )

    async def set_step(self, project_id: str, step: str, status: Optional[str] = None) -> None:
        """Record the stage currently running; a status change clears the last error."""
        fields: Dict[str, Any] = {"extraction_step": step}
        if status:
            fields["status"] = status
            fields["extraction_error"] = None
        await self._update_repository(project_id, fields)

    async def set_error(self, project_id: str, message: str) -> None:
        await self._update_repository(
            project_id,
            {"status": ProjectStatus.ERROR, "extraction_error": message, "extraction_step": None},
        )

    async def set_completed(
        self,
        project_id: str,
        status: str,
        ast_parsed_at: Optional[datetime] = None,
    ) -> None:
        fields: Dict[str, Any] = {
            "status": status,
            "extraction_step": "completed",
            "extraction_error": None,
        }
        if ast_parsed_at is not None:
            fields["ast_parsed_at"] = ast_parsed_at
        await self._update_repository(project_id, fields)

    async def set_dependencies_count(self, project_id: str, organization_id: str, count: int) -> None:
        await self.projects.update_one(
            {"_id": project_id, "organization_id": organization_id},
            {"$set": {"dependencies_count": count, "updated_at": utc_now()}},
        )
