"""
FastAPI application for the order pipeline.

This application provides:
1. The order ingress (POST /orders) and the order listing (GET /orders)
2. Notification subscription management (/notifications/...)
3. Dead-letter inspection and redrive (/queue/...)

Run with:
    uvicorn --factory api.main:create_app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from order_pipeline.pipeline import OrderPipeline
from shared.config import Settings, configure_logging
from shared.errors import (
    InvalidEmailError,
    InvalidPreferencesError,
    SubscriptionNotFoundError,
)

logger = logging.getLogger("api")


# Request models
class SubscribeRequest(BaseModel):
    """Body of POST /notifications/subscribe."""
    email: Optional[str] = Field(default=None, description="Recipient address")
    preferences: Optional[dict[str, Any]] = Field(
        default=None,
        description="orderCreated/orderCompleted/orderFailed/orderUrgent flags",
    )


class UnsubscribeRequest(BaseModel):
    email: str


def get_pipeline(request: Request) -> OrderPipeline:
    """Dependency returning the pipeline the app was built with."""
    return request.app.state.pipeline


def create_app(pipeline: Optional[OrderPipeline] = None, start_workers: bool = True) -> FastAPI:
    """
    Build the API around a pipeline.

    Args:
        pipeline: Pipeline to serve; built from environment settings if omitted
        start_workers: Start the consumer pool for the app's lifetime
    """
    if pipeline is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        pipeline = OrderPipeline(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown."""
        logger.info("Starting Order Pipeline API")
        if start_workers:
            pipeline.start()
        yield
        if start_workers:
            pipeline.stop()
        logger.info("Shutting down")

    app = FastAPI(
        title="Order Pipeline",
        description="""
        Asynchronous order processing.

        Orders are accepted immediately and queued. Consumers persist them,
        high-value orders run through the validate/pay/stock/notify workflow,
        and subscribers are emailed about the lifecycle events they chose.
        """,
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health", tags=["Health"])
    def health_check(pipeline: OrderPipeline = Depends(get_pipeline)):
        return {
            "status": "healthy",
            "service": "order-pipeline",
            "queue": pipeline.queue.stats(),
            "workers": pipeline.pool.running,
        }

    # =========================================================================
    # Orders
    # =========================================================================

    @app.post("/orders", tags=["Orders"])
    async def create_order(request: Request, pipeline: OrderPipeline = Depends(get_pipeline)):
        """
        Accept an order and place it in the queue.

        Any failure (unparseable body, missing orderId, enqueue error) comes
        back as a 500 with the error message.
        """
        try:
            payload = await request.json()
            order, _ = pipeline.submit(payload)
        except Exception as e:
            logger.error(f"Error creating order: {e}")
            return JSONResponse(
                status_code=500,
                content={"message": "Error creating order", "error": str(e) or type(e).__name__},
            )
        return {"message": "Order placed in queue", "orderId": order.order_id}

    @app.get("/orders", tags=["Orders"])
    def list_orders(pipeline: OrderPipeline = Depends(get_pipeline)):
        """Every stored order (unpaginated)."""
        return {"orders": [order.to_record() for order in pipeline.store.scan()]}

    # =========================================================================
    # Notifications
    # =========================================================================

    @app.post("/notifications/subscribe", tags=["Notifications"])
    def subscribe(body: SubscribeRequest, pipeline: OrderPipeline = Depends(get_pipeline)):
        """Register an email for lifecycle notifications; a confirmation email is sent."""
        try:
            subscription = pipeline.notifications.subscribe(body.email, body.preferences)
        except (InvalidEmailError, InvalidPreferencesError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {
            "message": "Subscription created. Check your email to confirm.",
            "subscriptionArn": subscription.subscription_arn,
            "preferences": subscription.preferences.to_dict(),
        }

    @app.post("/notifications/unsubscribe", tags=["Notifications"])
    def unsubscribe(body: UnsubscribeRequest, pipeline: OrderPipeline = Depends(get_pipeline)):
        try:
            pipeline.notifications.unsubscribe(body.email)
        except SubscriptionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"message": f"Unsubscribed {body.email}"}

    @app.get("/notifications/confirm", tags=["Notifications"])
    def confirm(token: str, pipeline: OrderPipeline = Depends(get_pipeline)):
        try:
            subscription = pipeline.notifications.confirm(token)
        except SubscriptionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"message": "Subscription confirmed", "email": subscription.email}

    # =========================================================================
    # Queue administration
    # =========================================================================

    @app.get("/queue/dead-letters", tags=["Queue"])
    def dead_letters(pipeline: OrderPipeline = Depends(get_pipeline)):
        return {"messages": [m.to_dict() for m in pipeline.queue.dead_letters()]}

    @app.post("/queue/dead-letters/redrive", tags=["Queue"])
    def redrive(pipeline: OrderPipeline = Depends(get_pipeline)):
        """Move every dead letter back to the main queue."""
        count = pipeline.queue.redrive_dead_letters()
        return {"message": f"Redrove {count} messages", "redriven": count}

    return app
