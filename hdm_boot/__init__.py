"""HDM Boot - modular monolith web application.

Provides authentication, user management, blog content, theming, i18n
and monitoring behind a single FastAPI application.
"""

__version__ = "1.0.0"
