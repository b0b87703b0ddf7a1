from __future__ import annotations

import logging
from typing import Mapping, Optional

from fastapi import FastAPI

from .env_settings import get_env
from .log_config import setup_logging
from .routers import attributes as attributes_router
from .routers import auth as auth_router
from .services.auth import LDAPAuthProvider
from .services.settings import DomainSettings, load_domains

log = logging.getLogger(__name__)


def build_providers(domains: Mapping[str, DomainSettings]) -> dict[str, LDAPAuthProvider]:
    """One provider (and so one directory client) per configured domain."""
    return {name: LDAPAuthProvider(name, cfg) for name, cfg in domains.items()}


def create_app(
    domains: Optional[Mapping[str, DomainSettings]] = None,
    providers: Optional[Mapping[str, LDAPAuthProvider]] = None,
) -> FastAPI:
    """Application factory.

    Without arguments the domains are read from LDAP_BRIDGE_CONFIG and logging
    is configured from the environment.
    """
    if providers is None:
        if domains is None:
            env = get_env()
            setup_logging(env.log_level, env.log_dir, env.log_retention_days)
            domains = load_domains(env.config_path)
        providers = build_providers(domains)

    app = FastAPI(title="LDAP Bridge")
    app.state.providers = dict(providers)

    @app.get("/health")
    def health():
        return {"status": "ok", "domains": sorted(app.state.providers)}

    app.include_router(auth_router.router)
    app.include_router(attributes_router.router)

    log.info("LDAP bridge ready: domains=%s", ", ".join(sorted(app.state.providers)) or "-")
    return app
