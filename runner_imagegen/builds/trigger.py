"""Build executor trigger.

This module handles:
- Synthesizing the build job definition of an image builder
- Registering it with the executor backend and wiring registry access
- Starting builds, with correlation ids of a provisioning request
- Querying build status and logs from the backend

The executor backend, artifact registry, asset stager and rule scheduler
are external collaborators described by the protocols below. Nothing
remote is touched until the configuration has been fully validated.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from runner_imagegen.builds.assembler import (
    DEFAULT_DOCKERFILE_TEMPLATE,
    AssetStager,
    assemble_build_script,
    validate_dockerfile_template,
)
from runner_imagegen.builds.buildspec import (
    BuildJobDefinition,
    check_platform,
    compose_build_spec,
    default_base_image,
    default_build_image,
    soci_arch,
)
from runner_imagegen.builds.schedule import (
    RuleScheduler,
    ScheduleRule,
    arm_rebuild_schedule,
    rate_expression,
)
from runner_imagegen.builds.signal import DEFAULT_REASON_LIMIT, CorrelationIds
from runner_imagegen.builds.versioning import (
    RecipeVersion,
    compute_recipe_version,
    create_recipe_inputs,
)
from runner_imagegen.components.base import ImageComponent
from runner_imagegen.config import BuilderOptions
from runner_imagegen.errors import UNSUPPORTED_IMAGE_TYPE, ConfigurationError
from runner_imagegen.types import Architecture, BuildStatus, Os

logger = logging.getLogger(__name__)

IMAGE_TAG = "latest"


class ArtifactRepository(Protocol):
    """Container registry repository the image is pushed to."""

    @property
    def name(self) -> str: ...

    @property
    def uri(self) -> str: ...

    @property
    def arn(self) -> str: ...

    def grant_pull_push(self, principal: str) -> None: ...


class ExecutorBackend(Protocol):
    """Remote build executor."""

    def create_project(self, definition: BuildJobDefinition, principal: str) -> str:
        """Create (or update) a build project and return its name."""
        ...

    def start_build(
        self, project: str, buildspec: str, environment: dict[str, str]
    ) -> str:
        """Start a build with environment overrides and return its id."""
        ...

    def get_build_status(self, build_id: str) -> BuildStatus: ...

    def get_build_log(self, build_id: str) -> str: ...

    def notify_on_build_failed(self, project: str, topic: str) -> object:
        """Send failed build events of ``project`` to ``topic``."""
        ...


@dataclass(frozen=True)
class ImageDescriptor:
    """The image a bound builder produces.

    Attributes:
        repository_name: Registry repository name.
        repository_uri: Registry repository URI.
        tag: Image tag.
        os: Image OS.
        architecture: Image architecture.
        recipe_version: Version of the recipe the image is built from.
        project: Executor project building the image.
    """

    repository_name: str
    repository_uri: str
    tag: str
    os: Os
    architecture: Architecture
    recipe_version: str
    project: str


class BuildExecutorTrigger:
    """Builds a container image from components on a remote executor.

    Creating the trigger does nothing remote. `synthesize` validates the
    configuration and assembles the job definition; `bind` registers it
    with the backend and arms the rebuild schedule; `trigger_now` starts
    a build.
    """

    def __init__(
        self,
        name: str,
        components: Sequence[ImageComponent],
        repository: ArtifactRepository,
        backend: ExecutorBackend,
        stager: AssetStager,
        options: BuilderOptions | None = None,
        scheduler: RuleScheduler | None = None,
        template: str = DEFAULT_DOCKERFILE_TEMPLATE,
        principal: str | None = None,
        reason_limit: int = DEFAULT_REASON_LIMIT,
    ) -> None:
        self.name = name
        self.components = list(components)
        self.repository = repository
        self.backend = backend
        self.stager = stager
        self.options = options or BuilderOptions()
        self.scheduler = scheduler
        self.template = template
        self.principal = principal or f"{name}-build-role"
        self.reason_limit = reason_limit

        self.project_name: str | None = None
        self.schedule_rule: ScheduleRule | None = None
        self._definition: BuildJobDefinition | None = None
        self._image: ImageDescriptor | None = None

        network = self.options.network
        if network is not None and network.subnet_type == "isolated":
            logger.warning(
                "Builder %s: isolated subnets cannot pull from public registries",
                name,
            )

    @property
    def os(self) -> Os:
        return self.options.os

    @property
    def architecture(self) -> Architecture:
        return self.options.architecture

    @property
    def recipe_version(self) -> RecipeVersion:
        """Content-addressed version of this builder's recipe."""
        inputs = create_recipe_inputs(
            name=self.name,
            os=self.os,
            arch=self.architecture,
            components=self.components,
            template=self.template,
        )
        return compute_recipe_version(inputs)

    def validate(self) -> None:
        """Validate the configuration without touching anything remote.

        Raises:
            ConfigurationError: If the configuration cannot be built.
        """
        check_platform(self.os)
        if self.options.build_image is None:
            default_build_image(self.os, self.architecture)
        soci_arch(self.architecture)
        validate_dockerfile_template(self.template)
        if self.options.rebuild_interval != timedelta(0):
            rate_expression(self.options.rebuild_interval)

    def synthesize(self) -> BuildJobDefinition:
        """Assemble the build job definition.

        Assets are staged on the first call only; later calls return the
        same definition.

        Raises:
            ConfigurationError: If the configuration cannot be built.
        """
        if self._definition is not None:
            return self._definition

        self.validate()
        options = self.options
        build_image = options.build_image or default_build_image(
            self.os, self.architecture
        )
        base_image = options.base_image or default_base_image(self.os)

        script = assemble_build_script(
            self.components,
            self.os,
            self.architecture,
            base_image=base_image,
            stager=self.stager,
            template=self.template,
            environment=options.environment,
            principal=self.principal,
        )
        buildspec = compose_build_spec(
            script,
            repository_arn=self.repository.arn,
            repository_uri=self.repository.uri,
            arch=self.architecture,
            reason_limit=self.reason_limit,
        )

        self._definition = BuildJobDefinition(
            name=self.name,
            description=(
                f"Build docker image for {self.name} "
                f"({self.os.value}/{self.architecture.value})"
            ),
            buildspec=buildspec,
            build_image=build_image,
            compute_type=options.compute_type,
            timeout_minutes=int(options.timeout.total_seconds() // 60),
            network=options.network,
            log_retention_days=options.log_retention_days,
        )
        logger.info(
            "Synthesized builder %s (recipe %s)", self.name, self.recipe_version
        )
        return self._definition

    def bind(self) -> ImageDescriptor:
        """Register the builder with the backend and return its image.

        Binding is done once; later calls return the same descriptor.
        """
        if self._image is not None:
            return self._image

        definition = self.synthesize()
        self.project_name = self.backend.create_project(definition, self.principal)
        self.repository.grant_pull_push(self.principal)

        if self.scheduler is not None:
            self.schedule_rule = arm_rebuild_schedule(
                self.project_name,
                self.repository.name,
                self.options.rebuild_interval,
                self.scheduler,
            )
        elif self.options.rebuild_interval != timedelta(0):
            logger.warning(
                "Builder %s has a rebuild interval of %s but no scheduler; "
                "rebuilds are manual only",
                self.name,
                self.options.rebuild_interval,
            )

        self._image = ImageDescriptor(
            repository_name=self.repository.name,
            repository_uri=self.repository.uri,
            tag=IMAGE_TAG,
            os=self.os,
            architecture=self.architecture,
            recipe_version=self.recipe_version.version,
            project=self.project_name,
        )
        return self._image

    def bind_ami(self) -> None:
        """Machine images cannot be built by a container build executor."""
        raise ConfigurationError(
            f"Builder {self.name} can only build container images, not AMIs",
            code=UNSUPPORTED_IMAGE_TYPE,
        )

    def trigger_now(self, correlation: CorrelationIds | None = None) -> str:
        """Start a build.

        Safe to call on every deployment: the provisioning system
        deduplicates requests by their correlation ids.

        Args:
            correlation: Ids of the provisioning request waiting on the
                build; placeholders when nobody waits.

        Returns:
            Build id assigned by the backend.
        """
        image = self.bind()
        correlation = correlation or CorrelationIds()
        definition = self.synthesize()

        build_id = self.backend.start_build(
            image.project, definition.buildspec_json(), correlation.to_env()
        )
        logger.info(
            "Started build %s for %s (provisioning=%s)",
            build_id,
            self.name,
            correlation.is_provisioning,
        )
        return build_id

    def status(self, build_id: str) -> BuildStatus:
        """Return the status of a build as reported by the backend."""
        return self.backend.get_build_status(build_id)

    def log(self, build_id: str) -> str:
        """Return the log of a build as reported by the backend."""
        return self.backend.get_build_log(build_id)


__all__ = [
    "IMAGE_TAG",
    "ArtifactRepository",
    "BuildExecutorTrigger",
    "ExecutorBackend",
    "ImageDescriptor",
]
