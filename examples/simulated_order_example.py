"""
Process a donation end to end against the simulator gateway, then run the fee
reconciliation job over the resulting ledger. Uses an in-memory SQLite database.
"""
import asyncio

from collective_ledger.connectors import SimulatorGateway
from collective_ledger.database import (
    Collective,
    ConnectedAccount,
    Order,
    PaymentMethod,
    User,
    create_async_engine,
    create_tables,
    get_async_session_factory,
)
from collective_ledger.reconciliation import ReconciliationJob
from collective_ledger.services import OrderProcessor


async def run():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)

    async with get_async_session_factory(engine)() as session:
        host = Collective(slug="opensource", name="Open Source Collective", currency="USD")
        session.add(host)
        await session.flush()
        collective = Collective(slug="webpack", name="Webpack", host_fee_percent=10, host_collective_id=host.id)
        donor = Collective(slug="xdamman", name="Xavier")
        user = User(email="xavier@example.com", username="xdamman")
        session.add_all([collective, donor, user])
        await session.flush()
        session.add(ConnectedAccount(collective_id=host.id, username="acct_opensource"))
        payment_method = PaymentMethod(token="tok_visa", created_by_user_id=user.id)
        session.add(payment_method)
        await session.flush()
        order = Order(
            from_collective_id=donor.id,
            to_collective_id=collective.id,
            total_amount=1000,
            currency="USD",
            description="Donation to Webpack",
            created_by_user_id=user.id,
            payment_method_id=payment_method.id,
        )
        session.add(order)
        await session.commit()

        gateway = SimulatorGateway()
        transactions = await OrderProcessor(session, gateway).process_order(order.id)
        print("Gateway calls:", gateway.operations())
        for tr in transactions:
            print(tr.to_dict())

        report = await ReconciliationJob(session).run()
        print(ReconciliationJob(session).generate_report(report, format="text"))

    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(run())
