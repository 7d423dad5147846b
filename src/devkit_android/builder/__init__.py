"""Builder module for devkit-android."""

from devkit_android.builder.gradle import (
    GradleBuilder,
    GradleNotFoundError,
    NdkBuilder,
)
from devkit_android.builder.injector import (
    InjectionError,
    PluginInjector,
    ProjectArtifact,
)
from devkit_android.builder.installer import (
    InstallError,
    ModuleInstaller,
)
from devkit_android.builder.manifest import (
    ManifestUpdater,
    XsltRunner,
)
from devkit_android.builder.project import (
    ProjectCreationError,
    ProjectMaterializer,
)
from devkit_android.builder.resources import ResourceCopier

__all__ = [
    "GradleBuilder",
    "GradleNotFoundError",
    "InjectionError",
    "InstallError",
    "ManifestUpdater",
    "ModuleInstaller",
    "NdkBuilder",
    "PluginInjector",
    "ProjectArtifact",
    "ProjectCreationError",
    "ProjectMaterializer",
    "ResourceCopier",
    "XsltRunner",
]
