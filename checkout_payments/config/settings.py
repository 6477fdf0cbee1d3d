import os
from dotenv import load_dotenv
from typing import Dict

# Load environment variables
load_dotenv()

class Settings:
    """Application settings configuration"""

    # Settlement API (consumed by the checkout widgets)
    API_BASE_URL: str = os.getenv("API_BASE_URL", "http://localhost:5000/api")
    SETTLEMENT_TIMEOUT_SECONDS: float = float(os.getenv("SETTLEMENT_TIMEOUT_SECONDS", "15"))

    # Payment configuration
    PAYMENT_CURRENCY: str = os.getenv("PAYMENT_CURRENCY", "THB")
    CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL", "฿")
    MERCHANT_NAME: str = os.getenv("MERCHANT_NAME", "Pet Paradise Co., Ltd.")

    # PromptPay
    PROMPTPAY_ID: str = os.getenv("PROMPTPAY_ID", "0812345678")  # Receiver phone or tax id
    PROMPTPAY_QR_VALIDITY_MINUTES: int = int(os.getenv("PROMPTPAY_QR_VALIDITY_MINUTES", "10"))

    # Bank transfer
    BANK_NAME: str = os.getenv("BANK_NAME", "Sample Bank Thailand")
    BANK_ACCOUNT_NAME: str = os.getenv("BANK_ACCOUNT_NAME", "Pet Paradise Co., Ltd.")
    BANK_ACCOUNT_NUMBER: str = os.getenv("BANK_ACCOUNT_NUMBER", "1234567890")
    BANK_SWIFT_CODE: str = os.getenv("BANK_SWIFT_CODE", "SAMBSTH")

    # Sandbox settlement API
    DATABASE_URL: str = os.getenv("DATABASE_URL", ":memory:")
    API_TOKENS: str = os.getenv("API_TOKENS", "demo-token=demo-user")
    DEMO_ORDER_ID: str = os.getenv("DEMO_ORDER_ID", "order_demo")
    DEMO_ORDER_TOTAL: float = float(os.getenv("DEMO_ORDER_TOTAL", "899.99"))

    # Application
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "5000"))
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")

    # CORS
    CORS_ORIGINS: list = [origin for origin in os.getenv("CORS_ORIGINS", "").split(",") if origin] or ["*"]

    def get_api_tokens(self) -> Dict[str, str]:
        """Parse API_TOKENS ("token=user_id,token2=user_id2") into a mapping"""
        tokens = {}
        for entry in self.API_TOKENS.split(","):
            token, _, user_id = entry.strip().partition("=")
            if token:
                tokens[token] = user_id or token
        return tokens

    def get_bank_details(self) -> Dict[str, str]:
        """Get bank transfer details shown to the customer"""
        return {
            "bank": self.BANK_NAME,
            "account_name": self.BANK_ACCOUNT_NAME,
            "account_number": self.BANK_ACCOUNT_NUMBER,
            "swift_code": self.BANK_SWIFT_CODE
        }

# Global settings instance
settings = Settings()
