"""
HTTP handler for call-setup decisions.

Lets a host runtime ask for a decision with a plain POST instead of handing
the channel over through ARI.
"""

import asyncio

from fastapi import APIRouter, HTTPException

from call_options.models.api_models import DecideRequest, DecideResponse
from call_options.services.call_controller import CallController
from call_options.utils.exceptions import SanityCheckFailed
from call_options.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/v1", tags=["decisions"])

# Global service instance (injected on startup)
call_controller: CallController = None


def init_handler(controller: CallController):
    """
    Initialize handler with call controller.
    
    Args:
        controller: Call controller running the decision pipeline
    """
    global call_controller
    call_controller = controller


@router.post("/decide", response_model=DecideResponse)
async def decide(request: DecideRequest) -> DecideResponse:
    """
    Decide what the host must do with a call.
    
    A malformed event is answered with status "aborted": the host leaves the
    call untouched.
    
    Returns:
        DecideResponse for the call
    """
    if call_controller is None:
        raise HTTPException(status_code=503, detail="Decision pipeline not initialized")

    context = request.to_context()
    try:
        # The store client is synchronous, keep it off the event loop
        decision = await asyncio.to_thread(call_controller.decide, context)
    except SanityCheckFailed as e:
        return DecideResponse.aborted(request.call_id, e.reason)

    return DecideResponse.from_decision(decision)
