from fastapi import APIRouter
import importlib
import logging
import pkgutil
import pathlib
from typing import List

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/v1")
BASE_PACKAGE = "taskgraph.api"
BASE_PATH = pathlib.Path(__file__).parent


def include_routers_from_package(package: str, path: pathlib.Path) -> List[str]:
    """
    Discover every module of the API package exposing a ``router`` and mount it.
    :param package: Dotted package name to scan.
    :param path: Filesystem path of that package.
    :return: Names of the modules whose router was mounted.
    """
    loaded_routers = []

    logger.info(f"📦 Loading routers from {package}")

    for module_info in pkgutil.walk_packages([str(path)], prefix=f"{package}."):
        module_name = module_info.name.split(".")[-1]

        if module_name.startswith("_"):
            continue

        try:
            module = importlib.import_module(module_info.name)
        except ImportError as e:
            logger.error(f"❌ Failed to import {module_info.name}: {e}")
            raise

        router = getattr(module, "router", None)
        if router is None:
            logger.debug(f"No router in module: {module_name}")
            continue

        api_router.include_router(router)
        loaded_routers.append(module_name)
        logger.debug(
            f"✅ Mounted {module_name} "
            f"(prefix: {router.prefix or 'none'}, routes: {len(router.routes)})"
        )

    logger.info(f"🎯 {len(loaded_routers)} routers loaded: {', '.join(loaded_routers)}")
    return loaded_routers


loaded_modules = include_routers_from_package(BASE_PACKAGE, BASE_PATH)

__all__ = ["api_router", "loaded_modules"]
