from fastapi import Request, FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import re
import html

# --- Rate Limiting ---
limiter = Limiter(key_func=get_remote_address)

SIGNIN_RATE = "5/minute"
CART_VIEW_RATE = "60/minute"

def setup_rate_limiting(app: FastAPI, enabled: bool = True):
    """Attach the shared limiter; tests and local runs switch it off."""
    limiter.enabled = enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# --- Security Headers Middleware ---
SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Referrer-Policy": "no-referrer",
}

# Carts, tokens and order history are per customer
PRIVATE_PREFIXES = ("/auth", "/cart", "/orders")

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.url.path.startswith(PRIVATE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"

        return response

# --- Input Cleaning ---
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

def clean_text(text: str) -> str:
    """Strip surrounding whitespace and control characters, keep everything else verbatim."""
    if not isinstance(text, str):
        return text
    return CONTROL_CHARS.sub("", text).strip()

def sanitize_input(text: str) -> str:
    """
    Clean a display field (names, product text) and HTML-escape it.

    Free text that has to come back exactly as entered, such as shipping
    details, goes through ``clean_text`` only.
    """
    if not isinstance(text, str):
        return text
    return html.escape(clean_text(text))
