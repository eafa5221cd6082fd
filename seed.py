"""Reset the product catalog to the starter products."""
import logging

from config import Settings, configure_logging
from database import connect, create_document
from schemas import Product

logger = logging.getLogger(__name__)

STARTER_PRODUCTS = [
    Product(title="Sesame Toffee", description="...", price=250, images=[], stock=50, category="sesame"),
    Product(title="Roasted Peanuts", description="...", price=180, images=[], stock=60, category="peanut"),
]


def seed(db) -> int:
    db["product"].delete_many({})
    for product in STARTER_PRODUCTS:
        create_document(db, "product", product.model_dump())
    return len(STARTER_PRODUCTS)


if __name__ == "__main__":
    settings = Settings.from_env()
    configure_logging(settings)
    count = seed(connect(settings))
    logger.info("Seeded %d products", count)
