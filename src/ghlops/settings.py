from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model: str = "gpt-4o-mini"
    planner_temperature: float = 0.1
    planner_max_tokens: int = 1000
    synthesis_temperature: float = 0.3
    synthesis_max_tokens: int = 600
    llm_synthesis_enabled: bool = True
    openai_api_key: str | None = None
    openai_base_url: str | None = "https://api.openai.com/v1"
    llm_request_timeout_seconds: float = 60.0

    ghl_mcp_url: str = "https://services.leadconnectorhq.com/mcp/"
    ghl_token: str | None = None
    ghl_location_id: str | None = None
    tool_request_timeout_seconds: float = 30.0

    cors_origins: str = "*"

    redis_url: str | None = None
    redis_key_prefix: str = "ghlops:"
    messages_storage_key: str = "ghl-assistant-messages"
    config_storage_key: str = "ghl-assistant-config"

    history_max_entries: int = 20
    history_prompt_window: int = 6
    user_context_entity_limit: int = 5

    agent_system_prompt: str = (
        "You are an advanced AI business assistant specializing in GoHighLevel "
        "(GHL) CRM management. You help business owners efficiently manage their "
        "entire operation while they're on the go.\n\n"
        "CORE CAPABILITIES:\n"
        "You have access to GHL MCP endpoints for:\n"
        "- Contact Management (search, create, update, tag)\n"
        "- Conversation & Messaging (SMS, email, chat history)\n"
        "- Opportunity Management (pipeline tracking, stage updates)\n"
        "- Calendar & Appointments (events, appointment notes)\n"
        "- Payment Processing (orders, transactions)\n"
        "- Location Data (sub-account details, custom fields)\n\n"
        "WORKFLOW INTELLIGENCE:\n"
        "Common business workflows you should recognize and optimize:\n"
        "1. Lead Management: Contact search -> Tag/segment -> Follow-up sequence\n"
        "2. Sales Pipeline: Opportunity search -> Stage progression -> Deal closure\n"
        "3. Customer Service: Message response -> Issue resolution -> Follow-up\n"
        "4. Appointment Setting: Availability check -> Booking -> Confirmation\n"
        "5. Payment Processing: Order lookup -> Transaction tracking -> Fulfillment\n\n"
        "SMART PARAMETER INFERENCE:\n"
        "- Use context from previous commands to fill missing parameters\n"
        "- Reference recent contacts/opportunities when IDs are needed\n"
        "- Batch related operations for efficiency\n\n"
        "When processing requests, determine the optimal set of tool calls. "
        "If no tool is needed, answer directly and concisely."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="allow",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    return Settings()
