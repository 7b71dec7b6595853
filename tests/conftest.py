"""
Pytest configuration and fixtures
"""

import pytest
import httpx
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock
from ingestion.extractors.camara_client import CamaraAPIClient
from ingestion.loaders.batch_writer import BoundedBatchWriter
from ingestion.loaders.document_store import InMemoryDocumentStore

FAKE_BASE_URL = "https://camara.test"


def make_expense(
    doc_id: Any,
    year: int,
    month: int,
    value: float = 100.0,
    expense_type: str = "COMBUSTÍVEIS E LUBRIFICANTES.",
    supplier: str = "Posto Central",
    installment: int = 0,
    id_documento: Any = None
) -> Dict[str, Any]:
    """
    Upstream expense payload as returned by /deputados/{id}/despesas.

    The live API sends no idDocumento; pass id_documento to add one.
    """
    expense = {
        "ano": year,
        "mes": month,
        "tipoDespesa": expense_type,
        "codDocumento": doc_id,
        "tipoDocumento": "Nota Fiscal",
        "codTipoDocumento": 0,
        "dataDocumento": f"{year:04d}-{month:02d}-10",
        "numDocumento": f"NF-{doc_id}",
        "valorDocumento": value,
        "urlDocumento": f"https://www.camara.leg.br/cota-parlamentar/documentos/{doc_id}.pdf",
        "nomeFornecedor": supplier,
        "cnpjCpfFornecedor": "12345678000199",
        "valorLiquido": value,
        "valorGlosa": 0,
        "numRessarcimento": "",
        "codLote": 1900000 + int(doc_id) if str(doc_id).isdigit() else 0,
        "parcela": installment,
    }
    if id_documento is not None:
        expense["idDocumento"] = id_documento
    return expense


def make_speech(
    started_at: str,
    summary: str = "Discussão do projeto de lei.",
    speech_type: str = "BREVES COMUNICAÇÕES"
) -> Dict[str, Any]:
    """Upstream speech payload as returned by /deputados/{id}/discursos"""
    return {
        "dataHoraInicio": started_at,
        "dataHoraFim": None,
        "tipoDiscurso": speech_type,
        "sumario": summary,
        "transcricao": f"Sr. Presidente, {summary}",
        "palavrasChave": "ORÇAMENTO, SAÚDE",
        "faseEvento": {"titulo": "Pequeno Expediente", "dataHoraInicio": None, "dataHoraFim": None},
        "urlAudio": None,
        "urlTexto": None,
        "urlVideo": None,
    }


def make_deputy(
    deputy_id: int,
    name: str,
    party: str = "PT",
    state: str = "SP",
    civil_name: Optional[str] = None
) -> Dict[str, Any]:
    return {
        "id": deputy_id,
        "nome": name,
        "nomeCivil": civil_name,
        "siglaPartido": party,
        "siglaUf": state,
        "idLegislatura": 57,
        "urlFoto": f"https://www.camara.leg.br/internet/deputado/bandep/{deputy_id}.jpg",
    }


class FakeCamaraAPI:
    """
    In-process stand-in for the open data API, served through
    httpx.MockTransport.

    Records every request; deputies listed in failing return HTTP 500 on
    their record endpoints.
    """

    def __init__(
        self,
        deputies: Optional[List[Dict[str, Any]]] = None,
        expenses: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        speeches: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        failing: tuple = ()
    ):
        self.deputies = deputies or []
        self.expenses = expenses or {}
        self.speeches = speeches or {}
        self.failing = {str(d) for d in failing}
        self.requests: List[httpx.Request] = []

    @staticmethod
    def _page(items: List[Dict[str, Any]], params) -> Dict[str, Any]:
        page = int(params.get("pagina", 1))
        size = int(params.get("itens", 100))
        return {"dados": items[(page - 1) * size:page * size], "links": []}

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        parts = request.url.path.strip("/").split("/")

        if parts == ["deputados"]:
            return httpx.Response(200, json=self._page(self.deputies, params))

        if len(parts) < 2 or parts[0] != "deputados":
            return httpx.Response(404, json={"status": 404, "title": "Not found"})

        deputy_id = parts[1]
        deputy = next((d for d in self.deputies if str(d["id"]) == deputy_id), None)

        if len(parts) == 2:
            if deputy is None:
                return httpx.Response(404, json={"status": 404, "title": "Not found"})
            return httpx.Response(200, json={"dados": {
                "id": deputy["id"],
                "nomeCivil": deputy.get("nomeCivil") or deputy["nome"].upper(),
                "ultimoStatus": {
                    "nome": deputy["nome"],
                    "siglaPartido": deputy["siglaPartido"],
                    "siglaUf": deputy["siglaUf"],
                    "idLegislatura": deputy["idLegislatura"],
                    "urlFoto": deputy["urlFoto"],
                },
            }})

        if deputy_id in self.failing:
            return httpx.Response(500, json={"status": 500, "title": "Internal error"})

        if parts[2] == "despesas":
            items = self.expenses.get(deputy_id, [])
            if "ano" in params:
                items = [e for e in items if str(e["ano"]) == params["ano"]]
            if "mes" in params:
                items = [e for e in items if str(e["mes"]) == params["mes"]]
            return httpx.Response(200, json=self._page(items, params))

        if parts[2] == "discursos":
            items = self.speeches.get(deputy_id, [])
            if "dataInicio" in params:
                items = [s for s in items if s["dataHoraInicio"][:10] >= params["dataInicio"]]
            if "dataFim" in params:
                items = [s for s in items if s["dataHoraInicio"][:10] <= params["dataFim"]]
            return httpx.Response(200, json=self._page(items, params))

        return httpx.Response(404, json={"status": 404, "title": "Not found"})

    def client(self, **kwargs) -> CamaraAPIClient:
        options = dict(
            base_url=FAKE_BASE_URL,
            requests_per_second=0,
            max_retries=2,
            retry_delay=0,
            items_per_page=5,
            max_pages=50,
            transport=httpx.MockTransport(self.handler),
            sleep=AsyncMock(),
        )
        options.update(kwargs)
        return CamaraAPIClient(**options)


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays without waiting"""
    return AsyncMock()


@pytest.fixture
def memory_store():
    return InMemoryDocumentStore()


@pytest.fixture
def writer(memory_store):
    """Writer with small limits so tests exercise automatic flushing"""
    return BoundedBatchWriter(
        memory_store,
        max_operations=5,
        max_bytes=10_000,
        safety_margin=0.95,
        commit_timeout=1.0
    )


@pytest.fixture
def fixed_now():
    return datetime(2024, 5, 22, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_api():
    deputies = [
        make_deputy(204554, "Ana Souza", party="PT", state="SP"),
        make_deputy(204555, "Bruno Lima", party="PL", state="RJ"),
        make_deputy(204556, "Carla Dias", party="PT", state="MG"),
    ]
    expenses = {
        "204554": [
            make_expense(7001, 2024, 4, 150.0),
            make_expense(7002, 2024, 5, 89.9, expense_type="TELEFONIA"),
        ],
        "204555": [
            make_expense(7101, 2023, 12, 1200.0, expense_type="DIVULGAÇÃO DA ATIVIDADE PARLAMENTAR."),
            make_expense(7102, 2024, 5, 45.5),
        ],
        "204556": [],
    }
    speeches = {
        "204554": [
            make_speech("2024-04-16T14:02", summary="Defesa do SUS."),
            make_speech("2024-05-08T10:30", summary="Reforma tributária."),
        ],
        "204555": [
            make_speech("2024-05-02T16:45", summary="Segurança pública."),
        ],
    }
    return FakeCamaraAPI(deputies=deputies, expenses=expenses, speeches=speeches)


@pytest.fixture
def expense_factory():
    return make_expense


@pytest.fixture
def speech_factory():
    return make_speech


@pytest.fixture
def deputy_factory():
    return make_deputy


@pytest.fixture
def api_factory():
    """Build a FakeCamaraAPI with custom data"""
    return FakeCamaraAPI
