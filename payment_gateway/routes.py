"""Checkout session and redirect routes."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request

from payment_gateway.errors import ProcessorError
from payment_gateway.sessions import CheckoutSessionRequest, CheckoutSessionResult

logger = logging.getLogger(__name__)


def register_payment_routes(app: FastAPI) -> None:
    """Register session routes. Expects app.state.session_builder."""

    @app.post("/payments/create-payment-session", response_model=CheckoutSessionResult)
    async def create_payment_session(body: CheckoutSessionRequest, request: Request):
        """Create a Stripe checkout session for a cart."""
        try:
            return await request.app.state.session_builder.build(body)
        except ProcessorError as exc:
            raise HTTPException(
                status_code=502, detail=f"Payment processor error: {exc.message}"
            ) from exc

    @app.get("/payments/success")
    async def success():
        return {"ok": True, "message": "Payment Successful"}

    @app.get("/payments/cancelled")
    async def cancelled():
        return {"ok": False, "message": "Payment Cancelled"}
