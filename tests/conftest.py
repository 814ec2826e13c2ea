import httpx
import pytest

from posledger.client.local_cache import LocalCache
from posledger.client.persistence import PersistenceAdapter
from posledger.client.remote import RemoteStore
from posledger.core.db import close_db, init_db
from posledger.main import app
from posledger.schemas.records import AddOn, Complement, IngredientRecord, ProductRecord, RecipeLine
from posledger.services.cart import add_to_cart, build_cart_item, build_order

ACCOUNT = "store-1"


# --- server side ---

@pytest.fixture
async def db():
    """Fresh in-memory database per test. The app lifespan is not run."""
    await init_db("sqlite://:memory:")
    yield
    await close_db()


@pytest.fixture
async def api(db):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def headers():
    return {"X-User-Id": ACCOUNT}


# --- session engine ---

def unreachable_transport():
    """Every request fails as if the server were down."""
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)
    return httpx.MockTransport(handler)


@pytest.fixture
def cache(tmp_path):
    return LocalCache(root=str(tmp_path / "cache"))


@pytest.fixture
async def remote(db):
    """Remote store client talking to the in-process app."""
    client = RemoteStore(ACCOUNT, base_url="http://test", transport=httpx.ASGITransport(app=app))
    yield client
    await client.aclose()


@pytest.fixture
async def offline_remote():
    client = RemoteStore(ACCOUNT, base_url="http://test", transport=unreachable_transport())
    yield client
    await client.aclose()


@pytest.fixture
async def store(remote, cache):
    adapter = PersistenceAdapter(ACCOUNT, remote, cache)
    await adapter.load()
    yield adapter
    await adapter.drain()
    adapter.close()


@pytest.fixture
async def catalog(store):
    """Sample menu: a bacon burger and a canned soda, with their ingredients."""
    for ingredient in [
        IngredientRecord(id="bun", name="Brioche Bun", unit="un", cost_per_unit=1.5, stock_quantity=100, min_stock=20),
        IngredientRecord(id="beef", name="Ground Beef", unit="kg", cost_per_unit=35.0, stock_quantity=10, min_stock=5),
        IngredientRecord(id="cheddar", name="Cheddar", unit="kg", cost_per_unit=45.0, stock_quantity=5, min_stock=2),
        IngredientRecord(id="bacon", name="Bacon", unit="kg", cost_per_unit=40.0, stock_quantity=3, min_stock=1),
        IngredientRecord(id="soda-can", name="Soda Can", unit="un", cost_per_unit=2.5, stock_quantity=48, min_stock=12),
    ]:
        store.ingredients.add(ingredient)

    store.products.add(ProductRecord(
        id="burger",
        name="Classic Bacon Burger",
        price=32.0,
        recipe=[
            RecipeLine(ingredient_id="bun", quantity=1),
            RecipeLine(ingredient_id="beef", quantity=0.150),
            RecipeLine(ingredient_id="cheddar", quantity=0.030),
            RecipeLine(ingredient_id="bacon", quantity=0.040),
        ],
        complements=[Complement(title="Doneness", options=["Rare", "Medium", "Well done"])],
        add_ons=[AddOn(id="extra-bacon", name="Extra bacon", price=5.0)],
    ))
    store.products.add(ProductRecord(
        id="soda",
        name="Soda",
        price=6.0,
        recipe=[RecipeLine(ingredient_id="soda-can", quantity=1)],
    ))
    await store.drain()
    return store


@pytest.fixture
def make_order(catalog):
    """Builds an order from (product_id, quantity) pairs through the POS cart."""
    def _make(lines, customer_name="Maria", customer_phone=None, **kwargs):
        cart = []
        for product_id, quantity in lines:
            cart = add_to_cart(cart, build_cart_item(catalog.products.get(product_id), quantity))
        return build_order(cart, customer_name, customer_phone, **kwargs)
    return _make
