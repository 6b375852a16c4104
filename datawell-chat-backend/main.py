"""
DataWell Chat API
=================

Natural-language questions over the DataWell users table.

Architecture:
- ChatPipeline: intent -> follow-up resolution -> SQL generation -> validation -> execution
- Groq (via LlamaIndex) for intent labels, SQL, error explanations and summaries
- SQLAlchemy for the users table (Postgres in production, SQLite in tests)

Conversation history is supplied by the client on every request;
nothing is stored server-side.
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from typing import Optional, List, Dict, Any
import math
import os
import re
from dotenv import load_dotenv
import logging
from contextlib import asynccontextmanager

from database import DatabaseManager, QueryExecutionError
from env_guard import validate_environment
from llm_client import DEFAULT_MODEL, CompletionClient
from query_pipeline import ChatPipeline, create_chat_pipeline
from summarizer import summarize

load_dotenv()

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)  # Keep INFO for our app, WARNING for libraries

for _module in ("query_pipeline", "intent_classifier", "context_resolver", "sql_generator", "sql_validator",
                "database", "error_explainer", "summarizer", "llm_client"):
    logging.getLogger(_module).setLevel(logging.INFO)

# Configuration
DATABASE_URL = os.getenv("DATABASE_URL")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", DEFAULT_MODEL)
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

CHAT_FAILURE = "Sorry, I encountered an error. Please try again."

# Global instances
pipeline: Optional[ChatPipeline] = None
db_manager: Optional[DatabaseManager] = None
llm_client: Optional[CompletionClient] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize system on startup, cleanup on shutdown"""
    global pipeline, db_manager, llm_client

    try:
        logger.info("Initializing DataWell chat...")
        validate_environment()

        llm_client = CompletionClient(api_key=GROQ_API_KEY, model=GROQ_MODEL)
        logger.info(f"Groq client initialized: {GROQ_MODEL}")

        db_manager = DatabaseManager(DATABASE_URL)
        db_manager.create_tables()
        logger.info("Users table ready")

        pipeline = create_chat_pipeline(llm_client, db_manager)
        logger.info("DataWell chat ready")
    except Exception as e:
        logger.error(f"Startup failed: {str(e)}")
        raise

    yield  # Server is running

    logger.info("Shutting down DataWell chat...")
    if db_manager is not None:
        db_manager.engine.dispose()


app = FastAPI(
    title="DataWell Chat API",
    description="Natural-language questions over the DataWell users table",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Pydantic Models
class ConversationTurn(BaseModel):
    """One prior chat turn; missing or null fields fall back to an empty user turn"""
    role: str = "user"
    content: str = ""

    @field_validator("role", "content", mode="before")
    @classmethod
    def text_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return "user" if info.field_name == "role" else ""
        return str(value)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    conversation_history: List[ConversationTurn] = Field(default_factory=list, alias="conversationHistory")

    @field_validator("message", mode="before")
    @classmethod
    def message_text(cls, value: Any) -> Any:
        # Non-text messages are treated as missing (400)
        return value if isinstance(value, str) else None

    @field_validator("conversation_history", mode="before")
    @classmethod
    def usable_turns(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [turn for turn in value if isinstance(turn, dict)]


LEADING_INTEGER = re.compile(r"^\s*([+-]?\d+)")


def parse_leading_int(value: Any) -> Optional[int]:
    """
    Form-field integer parsing: "41" -> 41, "25.5" -> 25, "abc" -> None.

    Malformed values are stored as absent.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = LEADING_INTEGER.match(str(value))
    return int(match.group(1)) if match else None


class UserSubmission(BaseModel):
    """Flat form payload; empty strings count as absent, numeric fields are read leniently"""
    model_config = ConfigDict(populate_by_name=True)

    age: Optional[int] = None
    gender: Optional[str] = None
    height: Optional[int] = None
    weight: Optional[int] = None
    city: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    occupation: Optional[str] = None
    education: Optional[str] = None
    smoking: Optional[str] = None
    drinks_per_week: Optional[int] = Field(default=None, alias="drinksPerWeek")

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("age", "height", "weight", "drinks_per_week", mode="before")
    @classmethod
    def lenient_int(cls, value: Any) -> Optional[int]:
        return parse_leading_int(value)

    @field_validator("gender", "city", "country", "zip", "occupation", "education", "smoking", mode="before")
    @classmethod
    def scalar_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        return str(value)


@app.get("/")
async def root():
    return {
        "message": "DataWell Chat API",
        "version": "1.0.0",
        "features": [
            "Natural language questions over the users table",
            "Follow-up questions and BMI pagination",
            "SELECT-only SQL validation",
            "AI summaries of recent submissions",
        ],
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    if pipeline is None or db_manager is None:
        return {"status": "unhealthy", "error": "Pipeline not initialized"}

    database_ok = db_manager.ping()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": "connected" if database_ok else "unreachable",
        "model": GROQ_MODEL,
    }


@app.get("/database/schema")
async def get_database_schema():
    """Get current database schema information"""
    if db_manager is None:
        raise HTTPException(status_code=503, detail="Database not initialized")

    return {"success": True, "schema_text": db_manager.get_schema_text()}


@app.post("/chat")
async def chat(request: ChatRequest):
    """Main chat endpoint - returns {response, sqlQuery?}"""
    if not request.message or not request.message.strip():
        return JSONResponse(status_code=400, content={"error": "Message is required"})

    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")

    logger.info(f"Processing message: {request.message[:100]}")
    history = tuple(turn.model_dump() for turn in request.conversation_history)

    try:
        result = await pipeline.handle(request.message, history)
    except Exception as e:
        logger.error(f"Error processing chat: {str(e)}", exc_info=True)
        return JSONResponse(status_code=500, content={"response": CHAT_FAILURE})

    body: Dict[str, Any] = {"response": result.response}
    if result.sql_query:
        body["sqlQuery"] = result.sql_query
    return JSONResponse(status_code=result.status_code, content=body)


@app.post("/submit")
async def submit(submission: UserSubmission):
    """Store one form submission as a users row"""
    if db_manager is None:
        logger.error("DB insert error: database not initialized")
        return JSONResponse(status_code=500, content={"success": False, "error": "Insert failed"})

    try:
        db_manager.insert_user(submission.model_dump())
    except QueryExecutionError as e:
        logger.error(f"DB insert error: {str(e)}")
        return JSONResponse(status_code=500, content={"success": False, "error": "Insert failed"})

    return {"success": True}


@app.get("/summarize")
async def summarize_recent():
    """AI summary of the 10 most recent submissions"""
    try:
        if db_manager is None or llm_client is None:
            raise RuntimeError("Service not initialized")
        rows = db_manager.recent_users(limit=10)
        summary = await summarize(llm_client, rows)
    except Exception as e:
        logger.error(f"Summarization error: {str(e)}")
        return JSONResponse(status_code=500, content={"success": False, "error": "Summarization failed"})

    return {"success": True, "summary": summary}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
