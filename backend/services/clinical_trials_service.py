"""
ClinicalTrials.gov search.

Queries the public v2 studies API and flattens each study into the
summary shape the dashboard renders.
"""

from typing import Any

import httpx

from config.config import Settings
from config.logging_config import get_logger
from models.care_models import ClinicalTrial, TrialStatus
from services.cache_service import CacheClient
from services.exceptions import ClinicalTrialsError

logger = get_logger(__name__)

TRIALS_CACHE_TTL_SECONDS = 1800

STATUS_FILTERS: dict[TrialStatus, str] = {
    TrialStatus.RECRUITING: "RECRUITING",
    TrialStatus.NOT_YET_RECRUITING: "NOT_YET_RECRUITING",
    TrialStatus.ACTIVE: "ACTIVE_NOT_RECRUITING",
    TrialStatus.COMPLETED: "COMPLETED",
}


def parse_study(study: dict[str, Any]) -> ClinicalTrial:
    """Flatten one study record from the v2 API."""
    protocol = study.get("protocolSection") or {}
    identification = protocol.get("identificationModule") or {}
    status_module = protocol.get("statusModule") or {}
    design = protocol.get("designModule") or {}
    description = protocol.get("descriptionModule") or {}
    conditions = protocol.get("conditionsModule") or {}
    locations = (protocol.get("contactsLocationsModule") or {}).get("locations") or []

    nct_id = identification.get("nctId") or ""
    location = ""
    if locations:
        first = locations[0]
        parts = [first.get("facility") or "", first.get("city") or "", first.get("country") or ""]
        location = ", ".join(parts).strip(", ")

    return ClinicalTrial(
        id=nct_id,
        title=identification.get("briefTitle") or "Untitled",
        status=status_module.get("overallStatus") or "Unknown",
        phase=", ".join(design.get("phases") or []),
        conditions=conditions.get("conditions") or [],
        description=description.get("briefSummary") or "",
        url=f"https://clinicaltrials.gov/study/{nct_id}",
        location=location,
        last_updated=(status_module.get("lastUpdatePostDateStruct") or {}).get("date") or "",
    )


class ClinicalTrialsService:
    """Thin async client for the ClinicalTrials.gov v2 API."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    async def search(self, query: str, status: TrialStatus) -> list[ClinicalTrial]:
        """
        Search studies by free-text term and status.

        Raises:
            ClinicalTrialsError: On network failure or a non-2xx response.
        """
        params = {
            "query.term": query,
            "filter.overallStatus": STATUS_FILTERS.get(status, "RECRUITING"),
            "pageSize": self.settings.clinical_trials_page_size,
            "format": "json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.settings.clinical_trials_base_url,
                timeout=self.settings.clinical_trials_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    "/api/v2/studies",
                    params=params,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "ClinicalTrials.gov returned an error",
                status_code=e.response.status_code,
            )
            raise ClinicalTrialsError("Failed to search clinical trials. Please try again.") from e
        except (httpx.RequestError, ValueError) as e:
            logger.error("ClinicalTrials.gov request failed", error=str(e))
            raise ClinicalTrialsError("Failed to search clinical trials. Please try again.") from e

        trials = [parse_study(study) for study in data.get("studies") or []]
        logger.info("Clinical trials retrieved", query=query, status=status.value, count=len(trials))
        return trials

    async def search_cached(
        self, cache: CacheClient, query: str, status: TrialStatus
    ) -> list[ClinicalTrial]:
        async def _fetch() -> list[dict[str, Any]]:
            return [trial.model_dump() for trial in await self.search(query, status)]

        cached = await cache.get_or_set(
            f"trials:{query}:{status.value}", _fetch, TRIALS_CACHE_TTL_SECONDS
        )
        return [ClinicalTrial.model_validate(item) for item in cached]
