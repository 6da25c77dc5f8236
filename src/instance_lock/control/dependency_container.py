# src/instance_lock/control/dependency_container.py
from pathlib import Path
from typing import Any
from dependency_injector import containers, providers

from ..infrastructure.env import Env
from ..infrastructure.logging import create_logger
from ..infrastructure.fs import FileLockStore, ILockStore
from ..infrastructure.console import ConsolePrompt, IPrompt
from ..infrastructure.process import ILivenessOracle, PsutilLivenessOracle
from ..infrastructure.runtime import IRuntimeHost, OsRuntimeHost
from ..domain.lock_config import ENV_PREFIX, LockSettings
from ..domain.lock_coordinator import LockCoordinator

# ------------------------ Factory / Provider functions ------


def env_provider_func(path: str | Path | None) -> Env:
    return Env().load(path if path is not None else ".env").unwrap()


def settings_provider_func(
    env: Env,
    config_file: Path | None,
    overrides: dict[str, Any] | None,
) -> LockSettings:
    return LockSettings.resolve(
        config_file=config_file,
        env=env.with_prefix(ENV_PREFIX),
        overrides=overrides,
    )


def get_lock_file(settings: LockSettings) -> Path:
    return settings.lock_file_path


# ------------------------ Dependency Container ------------------------


class Container(containers.DeclarativeContainer):
    config = providers.Configuration()

    # -------------------- Infrastructure --------------------

    env: providers.Singleton[Env] = providers.Singleton(
        env_provider_func,
        path=config.dotenv_path
    )

    logger = providers.Singleton(
        create_logger,
        name="instance_lock",
        log_dir=config.log_dir,
        logfile_size_limit_mb=config.logfile_size_limit_MB,
    )

    settings: providers.Singleton[LockSettings] = providers.Singleton(
        settings_provider_func,
        env=env,
        config_file=config.config_file,
        overrides=config.provided["overrides"],
    )

    store: providers.Singleton[ILockStore] = providers.Singleton(
        FileLockStore,
        lock_file=providers.Callable(get_lock_file, settings),
    )

    oracle: providers.Singleton[ILivenessOracle] = providers.Singleton(PsutilLivenessOracle)

    prompt: providers.Singleton[IPrompt] = providers.Singleton(ConsolePrompt)

    runtime: providers.Singleton[IRuntimeHost] = providers.Singleton(OsRuntimeHost)

    # -------------------- Domain --------------------

    coordinator: providers.Singleton[LockCoordinator] = providers.Singleton(
        LockCoordinator,
        settings=settings,
        store=store,
        oracle=oracle,
        prompt=prompt,
        runtime=runtime,
        logger=logger,
    )
