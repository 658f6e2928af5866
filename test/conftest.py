import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class FixedClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


def seed_color(catalog, stock: int = 50, rate: str = "100", code: str = "RAL-1001", name: str = "Beige"):
    product = catalog.create_product("Brighto", "Super Emulsion")
    variant = catalog.create_variant(product.id, "1L", rate)
    return catalog.create_color(variant.id, name, code, stock_quantity=stock)
