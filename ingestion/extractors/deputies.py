"""
Deputy directory: which deputies a processor runs over.
"""

from typing import Any, Dict, List, Optional
from ingestion.extractors.camara_client import CamaraAPIClient, replace_path
from schemas.records import Deputy
import logging

logger = logging.getLogger(__name__)

DEPUTIES_PATH = "/deputados"
DEPUTY_PATH = "/deputados/{codigo}"


class DeputyDirectory:
    """
    Resolve the deputies of a legislature, or a single deputy by id.

    The list endpoint may return one entry per mandate period, so entries
    are deduplicated by id, keeping the one that carries a civil name.
    """

    def __init__(self, client: CamaraAPIClient):
        self.client = client

    async def get_deputy(self, deputy_id: str, legislature: Optional[int] = None) -> Deputy:
        """Fetch one deputy's profile"""
        body = await self.client.get(
            replace_path(DEPUTY_PATH, {"codigo": deputy_id}),
            context=f"deputy {deputy_id}"
        )
        data = body.get("dados") or {}
        status = data.get("ultimoStatus") or {}

        return Deputy(
            id=str(data.get("id") or deputy_id),
            name=status.get("nome") or data.get("nomeCivil") or "",
            civil_name=data.get("nomeCivil"),
            party=status.get("siglaPartido") or "",
            state=status.get("siglaUf") or "",
            legislature=status.get("idLegislatura") or legislature,
            photo_url=status.get("urlFoto")
        )

    async def list_deputies(
        self,
        legislature: int,
        party: Optional[str] = None,
        state: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Deputy]:
        """
        List the deputies of a legislature.

        Args:
            legislature: Legislature number (e.g. 57)
            party: Keep only this party acronym
            state: Keep only this state acronym
            limit: Keep at most this many deputies, after filtering
        """
        items = await self.client.get_all_pages(
            DEPUTIES_PATH,
            {"idLegislatura": legislature, "ordem": "ASC", "ordenarPor": "nome"},
            context=f"deputies of legislature {legislature}"
        )

        deputies = self._deduplicate(items, legislature)
        logger.info(f"Found {len(deputies)} unique deputies in legislature {legislature}")

        if party:
            deputies = [d for d in deputies if d.party.upper() == party.upper()]
        if state:
            deputies = [d for d in deputies if d.state.upper() == state.upper()]
        if limit is not None and limit > 0:
            deputies = deputies[:limit]

        return deputies

    def _deduplicate(self, items: List[Dict[str, Any]], legislature: int) -> List[Deputy]:
        unique: Dict[str, Deputy] = {}

        for item in items:
            if item.get("id") is None:
                continue
            deputy = Deputy(
                id=str(item["id"]),
                name=item.get("nome") or "",
                civil_name=item.get("nomeCivil"),
                party=item.get("siglaPartido") or "",
                state=item.get("siglaUf") or "",
                legislature=item.get("idLegislatura") or legislature,
                photo_url=item.get("urlFoto")
            )
            existing = unique.get(deputy.id)
            if existing is None or (deputy.civil_name and not existing.civil_name):
                unique[deputy.id] = deputy

        return list(unique.values())
