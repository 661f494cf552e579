from fastapi import FastAPI, HTTPException
import os

from credit_workflow.domain.scoring import HeuristicScoringModel
from credit_workflow.domain.serialization import applicant_data_from_dict, scoring_result_to_dict

app = FastAPI(title="Mock Scoring Server", version="1.0.0")
# Seeded jitter so local runs are reproducible
_seed = os.getenv("SCORING_SEED")
model = HeuristicScoringModel(
    noise=float(os.getenv("SCORING_NOISE", "0.0")),
    seed=int(_seed) if _seed else None,
)


@app.get("/health")
def health(): return {"status": "ok"}


@app.post("/score")
def score(payload: dict):
    try:
        data = applicant_data_from_dict(payload)
    except (KeyError, TypeError) as e:
        raise HTTPException(status_code=422, detail=f"invalid applicant data: {e}")
    if data.revenues <= 0 or data.amount_asked <= 0:
        raise HTTPException(status_code=422, detail="revenues and amount_asked must be positive")
    return scoring_result_to_dict(model.evaluate(data))
