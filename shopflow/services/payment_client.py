from shopflow.services import payment_service


class PaymentClient:
    """
    Synchronous read-through call the order service makes to obtain a payment
    URL. Deployments put an RPC client behind this interface.
    """

    async def create_pending_payment(self, order_id: int, amount: int) -> str:
        raise NotImplementedError


class LocalPaymentClient(PaymentClient):
    """Calls the payment service in process (single-process runs and tests)."""

    async def create_pending_payment(self, order_id: int, amount: int) -> str:
        return await payment_service.create_pending_payment(order_id, amount)
