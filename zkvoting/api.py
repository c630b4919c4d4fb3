from logging import WARNING
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from zkvoting.exceptions import InvalidInput, ZkVotingError
from zkvoting.logger import log
from zkvoting.proof_service import ProofGenerationService


class ProofRequest(BaseModel):
    # Types are checked by the proof service so malformed values get an InvalidInput answer
    voteChoice: Any = None
    voteLimit: Any = None


def error_response(error: ZkVotingError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": error.message, "kind": error.kind})


def create_proof_router(service: ProofGenerationService) -> APIRouter:
    proof_router = APIRouter(prefix="/api", tags=["Proof"])

    @proof_router.post("/generateProof")
    def generate_proof(request: ProofRequest):
        """
        Generates a proof that the vote choice lies in [1, voteLimit].
        """
        try:
            proof = service.generate_proof(request.voteChoice, request.voteLimit)
        except ZkVotingError as e:
            log(WARNING, f"Error generating proof: {e}")
            return error_response(e)
        return proof.to_dict()

    return proof_router


def create_app(service: ProofGenerationService) -> FastAPI:
    app = FastAPI(title="zk-SNARK private voting")
    app.include_router(create_proof_router(service))

    @app.exception_handler(RequestValidationError)
    async def invalid_body_handler(request: Request, exc: RequestValidationError):
        return error_response(InvalidInput("The request body must be a JSON object."))

    return app
