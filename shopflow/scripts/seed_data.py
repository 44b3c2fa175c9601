# scripts/seed_data.py
import asyncio
from shopflow.core.db import init_db, close_db
from shopflow.models.product import Product
from shopflow.services.cart_service import add_item

PRODUCTS = [
    ("Mechanical Keyboard", 750000, 50),
    ("Wireless Mouse", 250000, 30),
    ("USB-C Hub", 199000, 100),
]


async def seed():
    ids = []
    for name, price, stock in PRODUCTS:
        product, _ = await Product.get_or_create(name=name, defaults={"price": price, "stock": stock})
        # If existing, reset stock (idempotent)
        product.stock = stock
        await product.save()
        ids.append(product.id)
    print("Products:", ", ".join(str(i) for i in ids))

    # A demo cart so cart reservation has something to act on
    for product_id in ids[:2]:
        await add_item("demo-user", product_id, 1)
    print("Cart seeded for demo-user.")


async def main():
    await init_db()
    await seed()
    await close_db()

if __name__ == "__main__":
    asyncio.run(main())
