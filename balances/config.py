import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    # Money
    CURRENCY = os.getenv("BALANCES_CURRENCY", "INR")
    MINOR_UNIT_DIGITS = int(os.getenv("BALANCES_MINOR_UNIT_DIGITS", 2))

    # Spending summaries
    GROQ_API_KEY = os.getenv("GROQ_API_KEY")
    GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")

    # HTTP
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


config = Config()
