# x402_backend/main.py
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request

from x402_backend.config import Config, load_config
from x402_backend.errors import BootstrapError, ConfigError, NotInitializedError
from x402_backend.eth import BootstrapContext

logger = logging.getLogger(__name__)


def health_payload(config: Config) -> Dict[str, Any]:
    info: Dict[str, Any] = {
        "chain": config.chain_name,
        "nodeEnv": config.node_env,
    }
    if not config.is_production:
        info["serviceRegistryAddress"] = config.service_registry_address
        info["paymentEscrowAddress"] = config.payment_escrow_address
    return {
        "status": "ok",
        "message": "x402 Services Backend is running",
        "config": info,
    }


def create_app(config: Optional[Config] = None, context: Optional[BootstrapContext] = None) -> FastAPI:
    """
    Build the API. The bootstrap context is owned by the caller and shared
    with handlers through app.state; /health only ever reads `config`.
    """
    if config is None:
        load_dotenv()
        config = load_config()
    if context is None:
        context = BootstrapContext(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # no-op when main() already bootstrapped
        await context.bootstrap()
        yield
        await context.close()

    app = FastAPI(title="x402 Services Backend", lifespan=lifespan)
    app.state.config = config
    app.state.contracts = context

    @app.get("/health")
    def health():
        return health_payload(config)

    @app.get("/debug/contracts")
    def debug_contracts(request: Request):
        if config.is_production:
            raise HTTPException(status_code=404, detail="Not Found")
        ctx: BootstrapContext = request.app.state.contracts
        try:
            handles = [ctx.get_service_registry(), ctx.get_payment_escrow()]
        except NotInitializedError as e:
            raise HTTPException(status_code=503, detail=str(e))
        out = {}
        for handle in handles:
            fn_names = handle.function_names()
            # Keep response small: show a few function names only
            out[handle.name] = {
                "address": handle.address,
                "abi_functions_count": len(fn_names),
                "sample_functions": fn_names[:5],
            }
        return {"ok": True, "state": ctx.state.value, "contracts": out}

    return app


async def serve(config: Config) -> None:
    context = BootstrapContext(config)
    logger.info("Connecting to %s", config.chain_name)
    logger.info("RPC: %s", config.rpc_url)
    await context.bootstrap()

    app = create_app(config, context)
    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=config.port))
    logger.info("Server is running on port %s", config.port)
    logger.info("Health check: http://localhost:%s/health", config.port)
    await server.serve()


def main() -> int:
    load_dotenv()
    try:
        config = load_config()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("%s", e)
        return 1

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(serve(config))
    except BootstrapError as e:
        logger.error("Failed to start server: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
