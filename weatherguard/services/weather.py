"""Weather risk analysis data service."""

from typing import Dict, List, Optional

from weatherguard.models.common import PagedResult, PaginationQuery
from weatherguard.models.weather import RiskLevel, WeatherRiskAnalysis
from weatherguard.services.base import CacheAsideService


class WeatherAnalysisService(CacheAsideService[WeatherRiskAnalysis]):
    """
    Weather risk analyses, indexed by project and by risk level.

    Keys:
        weather_analysis:<id>
        weather_analysis:project:<projectId>:<id>
        weather_analysis:risk:<riskLevel>:<id>

    Risk levels are lowercased in keys, so "High" and "high" share an index.
    """

    resource = "weather_analysis"
    model = WeatherRiskAnalysis
    search_fields = ("weather_condition", "impact_description", "risk_level")

    def relation_values(self, record: WeatherRiskAnalysis) -> Dict[str, Optional[str]]:
        return {
            "project": record.project_id,
            "risk": record.risk_level.lower() if record.risk_level else None,
        }

    def tags(self, record: WeatherRiskAnalysis) -> List[Optional[str]]:
        return ["weather_analysis", record.risk_level, record.project_id, record.task_id]

    async def get_by_project(
        self,
        project_id: str,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[WeatherRiskAnalysis]:
        return await self.get_by_relation("project", project_id, pagination)

    async def get_by_risk_level(
        self,
        risk_level: str,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[WeatherRiskAnalysis]:
        return await self.get_by_relation("risk", risk_level.lower(), pagination)

    async def get_high_risk(
        self,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[WeatherRiskAnalysis]:
        """
        Analyses at high or critical risk.

        Sorted by risk score, highest first, unless the caller orders
        by something else.
        """
        pagination = self.normalize_pagination(pagination)
        if not pagination.order_by:
            pagination = pagination.model_copy(
                update={"order_by": "risk_score", "descending": True}
            )

        analyses = {}
        for level in RiskLevel.ELEVATED:
            for analysis in await self.load_relation("risk", level):
                analyses[analysis.id] = analysis

        return self._page(list(analyses.values()), pagination)

    async def search_analyses(
        self,
        query: str,
        project_id: Optional[str] = None,
        pagination: Optional[PaginationQuery] = None,
    ) -> PagedResult[WeatherRiskAnalysis]:
        return await self.search(
            query,
            relation="project" if project_id is not None else None,
            relation_id=project_id,
            pagination=pagination,
        )
