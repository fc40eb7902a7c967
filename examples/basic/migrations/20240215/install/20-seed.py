from decimal import Decimal

CUSTOMERS = [(1, "Acme", "DE"), (2, "Globex", "US")]
ORDERS = [(1, 1, Decimal("120.50")), (2, 2, Decimal("75.00"))]


async def migration(context, connection, logger):
    p = connection.placeholder
    for row in CUSTOMERS:
        await connection.execute(f"INSERT INTO customers VALUES ({p}, {p}, {p})", *row)
    for row in ORDERS:
        await connection.execute(f"INSERT INTO orders VALUES ({p}, {p}, {p})", *row)
    logger.info("Seeded %d customers and %d orders for %s", len(CUSTOMERS), len(ORDERS), context.version)
