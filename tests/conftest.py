"""
Shared fixtures.

The LLM is switched off before any brandbuddy module reads settings, so
every insight comes from the rule path unless a test injects a stub.
"""
import os
from datetime import datetime, timezone

os.environ["ENABLE_LLM_INSIGHTS"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["TENANT_BRAND"] = "Callahan-Smith"

import pytest  # noqa: E402
from aiohttp import web  # noqa: E402
from aiohttp.test_utils import TestServer  # noqa: E402

BRAND = "Callahan-Smith"
NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class StubLLM:
    """Stands in for LLMService; replies are queued per call"""

    def __init__(self, json_reply=None, text_reply=None, enabled=True):
        self.enabled = enabled
        self.json_reply = json_reply
        self.text_reply = text_reply
        self.prompts = []

    async def complete_json(self, prompt, system=None, **kwargs):
        self.prompts.append(prompt)
        return self.json_reply

    async def complete(self, prompt, system=None, **kwargs):
        self.prompts.append(prompt)
        return self.text_reply


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def stub_llm():
    return StubLLM


@pytest.fixture
def make_product():
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        product = {
            "product_id": f"P-{counter['n']}",
            "product_sku": f"SKU-{counter['n']}",
            "product_name": f"Widget {counter['n']}",
            "brand_name": BRAND,
            "unit_quantity": 50,
            "unit_cost": 10,
            "active": True,
            "supplier_name": "Acme",
            "country_of_origin": "USA",
            "inventory_item_id": f"INV-{counter['n']}",
            "created_date": "2024-01-01",
        }
        product.update(overrides)
        return product

    return _make


@pytest.fixture
def make_shipment():
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        shipment = {
            "shipment_id": f"SH-{counter['n']}",
            "brand_name": BRAND,
            "created_date": "2024-03-01",
            "purchase_order_number": f"PO-{counter['n']}",
            "status": "completed",
            "supplier": "Acme",
            "expected_quantity": 20,
            "received_quantity": 20,
            "unit_cost": 10,
            "expected_arrival_date": "2024-03-10",
            "arrival_date": "2024-03-10",
            "warehouse_id": "WH-1",
            "sku": f"SKU-{counter['n']}",
            "inventory_item_id": f"INV-{counter['n']}",
            "ship_from_country": "USA",
        }
        shipment.update(overrides)
        return shipment

    return _make


@pytest.fixture
def happy_path(make_product, make_shipment):
    """Ten active widgets and five clean, on-time shipments"""
    products = [make_product() for _ in range(10)]
    shipments = [make_shipment() for _ in range(5)]
    return products, shipments


@pytest.fixture
async def chat_server():
    """
    Start local chat-completions endpoints backed by the given handler.

    Returns an async factory: ``url = await chat_server(handler)``.
    """
    servers = []

    async def _serve(handler):
        app = web.Application()
        app.router.add_post("/v1/chat/completions", handler)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return str(server.make_url("/v1/chat/completions"))

    yield _serve

    for server in servers:
        await server.close()
