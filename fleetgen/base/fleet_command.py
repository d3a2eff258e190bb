"""
Fleet Command Base Class

Base class for commands that work on a fleet workspace.
Provides configuration loading and service initialization.
"""

import threading
from typing import Iterable, List, Optional

from fleetgen.base.base_command import BaseCommand
from fleetgen.core import (
    CheckPipeline,
    ConfigLoader,
    DeploymentOrchestrator,
    FleetConfig,
    GenerationStore,
    HostRegistry,
    SecretResolver,
)
from fleetgen.exceptions import ConfigError
from fleetgen.models import Host
from fleetgen.services import (
    CommandBuilder,
    CommandEvaluator,
    CommandHealthProbe,
    CommandLinter,
    CommandRunner,
    CommandSecretBackend,
    CommandSwitcher,
    HostTestRunner,
    NoopHealthProbe,
    NoopLinter,
)


class FleetCommand(BaseCommand):
    """
    Base class for workspace commands.

    Provides:
    - fleet.yml / .env / hosts.yml loading (ConfigError exits with 3)
    - Command-backed adapters built from the configured templates
    - A shared cancellation event for the orchestrator
    """

    def __init__(
        self,
        root: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(root=root, verbose=verbose, json_output=json_output)
        self.config: Optional[FleetConfig] = None
        self.registry: Optional[HostRegistry] = None
        self.store: Optional[GenerationStore] = None
        self.cancel_event = threading.Event()

    def load_workspace(self) -> FleetConfig:
        """
        Load configuration and validate the host registry.

        Raises:
            ConfigError: If either is invalid
        """
        root = self.workspace_root
        self.config = ConfigLoader(root).load()
        self.registry = HostRegistry(root)
        result = self.registry.validate()
        for warning in result.warnings:
            self.print_dim(warning)
        return self.config

    def select_hosts(self, host_ids: Iterable[str]) -> List[Host]:
        return self.registry.select(host_ids)

    def ensure_store(self) -> GenerationStore:
        if self.store is None:
            self.store = GenerationStore(self.config.state_dir, logger=self.logger)
        return self.store

    def require_command(self, name: str) -> str:
        """
        Get a configured command template.

        Raises:
            ConfigError: If fleet.yml does not define it
        """
        template = getattr(self.config.commands, name)
        if not template:
            raise ConfigError(
                f"No '{name}' command configured",
                context=f"Set commands.{name} in fleet.yml",
            )
        return template

    def runner(self) -> CommandRunner:
        return CommandRunner(logger=self.logger, cwd=self.config.root)

    def build_pipeline(self, strict: bool = False) -> CheckPipeline:
        timeouts = self.config.timeouts
        runner = self.runner()
        lint_template = self.config.commands.lint
        linter = (
            CommandLinter(lint_template, timeouts.lint, runner)
            if lint_template
            else NoopLinter()
        )
        return CheckPipeline(
            evaluator=CommandEvaluator(self.require_command("eval"), timeouts.eval, runner),
            test_runner=HostTestRunner(timeouts.test, root=self.config.root, runner=runner),
            linter=linter,
            strict=strict,
            logger=self.logger,
        )

    def build_resolver(self, hosts: Iterable[Host]) -> SecretResolver:
        """Secret resolver; a decrypt command is required only if a host declares secrets"""
        template = self.config.commands.decrypt
        backend = None
        if template:
            backend = CommandSecretBackend(
                template, self.config.timeouts.secrets, self.config.root, self.runner()
            )
        else:
            needing = [host.id for host in hosts if host.secrets]
            if needing:
                raise ConfigError(
                    "No 'decrypt' command configured",
                    context=(
                        f"Hosts declaring secrets: {', '.join(needing)}. "
                        "Set commands.decrypt in fleet.yml"
                    ),
                )
        runtime_dir = self.config.settings.secrets.runtime_dir
        return SecretResolver(backend, runtime_dir=runtime_dir, logger=self.logger)

    def build_orchestrator(
        self,
        hosts: List[Host],
        strict: bool = False,
        check: bool = True,
        build: bool = True,
        activate: bool = True,
    ) -> DeploymentOrchestrator:
        """
        Wire the orchestrator for the given hosts.

        Only the adapters a command needs are required to be configured.

        Args:
            hosts: Hosts the command will touch
            strict: Lint findings block the build
            check: Wire the check pipeline (False for rollback)
            build: Wire the builder (False for check and rollback)
            activate: Wire store, secrets, switch and probe (False for check)
        """
        timeouts = self.config.timeouts
        runner = self.runner()

        checks = self.build_pipeline(strict=strict) if check else None
        builder = None
        if build:
            builder = CommandBuilder(self.require_command("build"), timeouts.build, runner)

        store = resolver = switcher = probe = None
        if activate:
            store = self.ensure_store()
            resolver = self.build_resolver(hosts)
            switcher = CommandSwitcher(
                self.require_command("switch"), timeouts.switch, runner
            )
            probe_template = self.config.commands.probe
            probe = (
                CommandHealthProbe(probe_template, timeouts.probe, runner)
                if probe_template
                else NoopHealthProbe()
            )

        return DeploymentOrchestrator(
            hosts=hosts,
            checks=checks,
            builder=builder,
            store=store,
            resolver=resolver,
            switcher=switcher,
            probe=probe,
            timeouts=timeouts,
            logger=self.logger,
            cancel_event=self.cancel_event,
        )

    def run(self, **kwargs) -> None:
        """
        Run command after loading the workspace.

        Args:
            **kwargs: Command arguments
        """
        try:
            self.load_workspace()
        except ConfigError as e:
            self.fail(e)

        super().run(**kwargs)
