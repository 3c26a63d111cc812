"""Abstract patient data source interface.

Each loader returns the raw JSON payload for one chart section. Payload shapes
follow the chart layout: ``{"allergies": [...]}``, ``{"vitals": [...]}``,
``{"notes": [...]}``, ``{"encounters": [...]}``, ``{"studies": [...]}``,
``{"procedures": [...]}``; problems and medications come back as
``{"active": {...}, "resolved"|"historical": {...}}``; labs as a flat list of
results carrying their panel's ``collectedDate``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class SourceLoadError(Exception):
    """Base exception for data source failures."""

    pass


class SourceNotFoundError(SourceLoadError):
    """Requested chart section does not exist."""

    pass


class SourceFormatError(SourceLoadError):
    """Chart section exists but is not valid JSON."""

    pass


class PatientDataSource(ABC):
    """Async loaders for every chart section the builder consumes."""

    @abstractmethod
    async def load_patient(self, patient_id: str) -> Any:
        """Demographics."""

    @abstractmethod
    async def load_allergies(self, patient_id: str) -> Any:
        pass

    @abstractmethod
    async def load_problems(self, patient_id: str) -> Any:
        """Active and resolved problem lists."""

    @abstractmethod
    async def load_medications(self, patient_id: str) -> Any:
        """Active and historical medication lists."""

    @abstractmethod
    async def load_vitals(self, patient_id: str) -> Any:
        pass

    @abstractmethod
    async def load_labs(self, patient_id: str) -> Any:
        """All lab results, flattened from their panels."""

    @abstractmethod
    async def load_notes_index(self, patient_id: str) -> Any:
        """Note metadata only."""

    @abstractmethod
    async def load_note(self, note_id: str, patient_id: str) -> Any:
        """Full content of one note."""

    @abstractmethod
    async def load_encounters(self, patient_id: str) -> Any:
        pass

    @abstractmethod
    async def load_imaging(self, patient_id: str) -> Any:
        pass

    @abstractmethod
    async def load_social_history(self, patient_id: str) -> Any:
        pass

    @abstractmethod
    async def load_family_history(self, patient_id: str) -> Any:
        pass

    @abstractmethod
    async def load_procedures(self, patient_id: str) -> Any:
        pass

    def invalidate(self) -> None:
        """Forget any cached payloads so the next load sees fresh data."""


class ChartLayoutSource(PatientDataSource):
    """Shared path layout for file- and URL-backed charts.

    Subclasses only implement ``fetch_json(relative_path)``.
    """

    @abstractmethod
    async def fetch_json(self, path: str) -> Any:
        """Fetch and decode one JSON document relative to the chart root."""

    async def load_patient(self, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/demographics.json")

    async def load_allergies(self, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/allergies.json")

    async def load_problems(self, patient_id: str) -> Any:
        active = await self.fetch_json(f"{patient_id}/problems/active.json")
        resolved = await self.fetch_json(f"{patient_id}/problems/resolved.json")
        return {"active": active, "resolved": resolved}

    async def load_medications(self, patient_id: str) -> Any:
        active = await self.fetch_json(f"{patient_id}/medications/active.json")
        historical = await self.fetch_json(f"{patient_id}/medications/historical.json")
        return {"active": active, "historical": historical}

    async def load_vitals(self, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/vitals/index.json")

    async def load_labs(self, patient_id: str) -> Any:
        index = await self.fetch_json(f"{patient_id}/labs/index.json") or {}
        panel_refs = (index.get("panels") or []) if isinstance(index, dict) else index
        if not isinstance(panel_refs, list):
            raise SourceFormatError(f"Lab index for {patient_id} has no panel list")

        results: list[dict[str, Any]] = []
        for panel_ref in panel_refs:
            panel_id = panel_ref.get("id") if isinstance(panel_ref, dict) else panel_ref
            if not isinstance(panel_id, (str, int)):
                logger.warning("Skipping lab panel reference %r for %s", panel_ref, patient_id)
                continue
            try:
                panel = await self.fetch_json(f"{patient_id}/labs/panels/{panel_id}.json")
            except SourceLoadError as e:
                logger.warning("Could not load lab panel %s for %s: %s", panel_id, patient_id, e)
                continue
            if not isinstance(panel, dict) or not isinstance(panel.get("results", []), list):
                logger.warning("Skipping malformed lab panel %s for %s", panel_id, patient_id)
                continue
            for result in panel.get("results", []):
                if not isinstance(result, dict):
                    continue
                results.append(
                    {
                        **result,
                        "panelName": panel.get("name"),
                        "panelId": panel.get("id"),
                        "collectedDate": panel.get("collectedDate"),
                        "orderedBy": panel.get("orderedBy"),
                    }
                )
        return results

    async def load_notes_index(self, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/notes/index.json")

    async def load_note(self, note_id: str, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/notes/{note_id}.json")

    async def load_encounters(self, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/encounters/index.json")

    async def load_imaging(self, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/imaging/index.json")

    async def load_social_history(self, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/social_history.json")

    async def load_family_history(self, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/family_history.json")

    async def load_procedures(self, patient_id: str) -> Any:
        return await self.fetch_json(f"{patient_id}/procedures/index.json")
