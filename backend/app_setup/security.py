from fastapi import FastAPI
from backend import config

CHECKOUT_ORIGINS = ["https://checkout.razorpay.com", "https://api.razorpay.com"]
SWAGGER_CDNS = ["https://cdn.jsdelivr.net", "https://unpkg.com"]


def register_security_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def security_headers(request, call_next):
        response = await call_next(request)

        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
        if config.COOKIE_SECURE:
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")

        # CSP: le checkout hébergé s'ouvre en iframe/popup, les PUT presigned vont vers Supabase
        csp_connect = ["'self'", *CHECKOUT_ORIGINS, *SWAGGER_CDNS]
        if config.SUPABASE_URL:
            csp_connect.append(config.SUPABASE_URL.rstrip("/"))

        csp = (
            "default-src 'self'; "
            "base-uri 'self'; object-src 'none'; frame-ancestors 'none'; "
            "img-src 'self' data: blob: https://fastapi.tiangolo.com; "
            f"style-src 'self' 'unsafe-inline' {' '.join(SWAGGER_CDNS)}; "
            f"script-src 'self' 'unsafe-inline' {' '.join(SWAGGER_CDNS)} https://checkout.razorpay.com; "
            f"frame-src {' '.join(CHECKOUT_ORIGINS)}; "
            f"connect-src {' '.join(csp_connect)}"
        )
        response.headers["Content-Security-Policy"] = csp
        return response
