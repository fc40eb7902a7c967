async def migration(context, connection, logger):
    await connection.execute("DELETE FROM customers WHERE id IN (1, 2)")
    logger.info("Removed seeded customers")
