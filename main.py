# /main.py
# Hosting script: samples gas prices on an interval and serves the engine's
# recent statistics over HTTP.
import asyncio
from aiohttp import web

from basegas.core.config import settings
from basegas.core.config_validator import validate as validate_config
from basegas.core.logger import configure_logging, get_logger
from basegas.core.gas_optimizer import GasOptimizer
from basegas.core.monitor import GasMonitor
from basegas.core.rpc import ResilientGasRpc
from basegas.adapters.price_oracle import PriceOracle


def build_app(optimizer: GasOptimizer, monitor: GasMonitor) -> web.Application:
    async def healthz(request):
        """Provides a JSON health status for the service."""
        latest = monitor.gas_history[-1] if monitor.gas_history else None
        return web.json_response({
            "status": "ok",
            "samples": len(monitor.gas_history),
            "latest_gwei": str(latest.gwei) if latest else None,
        })

    async def gas_stats(request):
        return web.json_response(optimizer.get_gas_stats().model_dump(mode="json"))

    async def optimal_price(request):
        result = await optimizer.get_optimal_gas_price(timeout=settings.RPC_TIMEOUT_SECONDS)
        return web.json_response(result.model_dump(mode="json"))

    app = web.Application()
    app.add_routes([
        web.get("/healthz", healthz),
        web.get("/gas/stats", gas_stats),
        web.get("/gas/price", optimal_price),
    ])
    return app


async def main():
    configure_logging()
    log = get_logger("basegas.system")
    config = validate_config()
    log.info("GAS_SERVICE_STARTING", network=settings.NETWORK)

    rpc = ResilientGasRpc()
    await rpc.initialize()
    oracle = PriceOracle()
    optimizer = GasOptimizer(rpc, config)
    monitor = GasMonitor(rpc, oracle=oracle, config=config)

    runner = web.AppRunner(build_app(optimizer, monitor))
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", settings.HEALTH_PORT)
    await site.start()
    log.info("HEALTHCHECK_SERVER_STARTED", port=settings.HEALTH_PORT)

    try:
        await monitor.monitor_gas_prices()
    finally:
        await oracle.close()
        await runner.cleanup()
        log.warning("SYSTEM_SHUTDOWN_COMPLETE")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
