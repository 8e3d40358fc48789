import logging

from fastapi import FastAPI, Response

from scorecard.api.scorecards import router as scorecards_router
from scorecard.telemetry import setup_otel

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = FastAPI(title="Scorecard Metrics API")
setup_otel(app)

app.include_router(scorecards_router)
app.include_router(scorecards_router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.head("/health")
def head_health():
    return Response(status_code=200)
