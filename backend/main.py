"""Main entry point for the TodoBot assistant API."""
import logging
import time
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from config import PORT, CORS_ORIGINS, LOG_LEVEL, MODEL_NAME
from logger import setup_logging
from models.api import ChatRequest, ChatResponse, StatusResponse
from services.action_dispatcher import ActionDispatcher
from services.agent_loop import LoopController
from services.context_builder import ContextBuilder
from services.conversation_manager import ConversationStore
from services.event_logger import EventLogger
from services.llm_client import LLMClient
from services.response_sanitizer import ResponseSanitizer
from services.task_store import TaskStoreClient

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="TodoBot Assistant",
    description="Natural-language assistant for a personal task list",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
llm_client: LLMClient = None
loop_controller: LoopController = None
event_logger: EventLogger = None


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global llm_client, loop_controller, event_logger

    setup_logging(LOG_LEVEL)
    logger.info("Initializing TodoBot services...")

    try:
        event_logger = EventLogger()
        logger.info("Initialized EventLogger")

        task_store = TaskStoreClient()
        logger.info("Initialized TaskStoreClient")

        llm_client = LLMClient()
        logger.info("Initialized LLMClient")

        loop_controller = LoopController(
            llm_client=llm_client,
            dispatcher=ActionDispatcher(task_store, event_logger=event_logger),
            conversations=ConversationStore(),
            context_builder=ContextBuilder(),
            sanitizer=ResponseSanitizer(),
            task_store=task_store,
            event_logger=event_logger
        )
        logger.info("Initialized LoopController")

        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Release the event log file."""
    if event_logger is not None:
        event_logger.close()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "TodoBot Assistant API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "todobot-assistant",
        "version": "1.0.0"
    }


@app.get("/ai/status", response_model=StatusResponse)
async def ai_status() -> StatusResponse:
    """Report whether the language-model service is configured."""
    enabled = llm_client is not None and llm_client.is_configured
    return StatusResponse(enabled=enabled, model=llm_client.model if llm_client else MODEL_NAME)


@app.post("/ai/simulate", response_model=ChatResponse)
def simulate_endpoint(request: ChatRequest) -> ChatResponse:
    """
    Run one natural-language turn for a user.

    Primarily for exercising the assistant outside any chat transport.
    Declared sync so the blocking model and task store calls run in the
    threadpool.

    Args:
        request: ChatRequest with user_id and message

    Returns:
        ChatResponse with the sanitized reply and loop metadata

    Raises:
        HTTPException: 400 for blank messages, 503 when the AI service is not
            configured and the request needs the model, 500 for unexpected errors
    """
    start_time = time.time()

    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    if loop_controller is None or (
        not llm_client.is_configured and not loop_controller.answers_without_model(request.message)
    ):
        raise HTTPException(
            status_code=503,
            detail={
                "error": "AI service is not available",
                "details": "The Groq client is not initialized. Check your API key."
            }
        )

    try:
        logger.info(f"Processing message for user {request.user_id}: {request.message[:100]}")
        result = loop_controller.handle_turn(request.user_id, request.message)
    except Exception as e:
        logger.error(f"Unexpected error processing message: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Internal server error: {str(e)}"
        )

    total_latency_ms = int((time.time() - start_time) * 1000)
    logger.info(f"Turn finished in {result.state.value} after {total_latency_ms}ms")

    return ChatResponse(
        response=result.reply,
        state=result.state.value,
        iterations=result.iterations,
        actions=result.actions
    )


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting TodoBot Assistant API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
