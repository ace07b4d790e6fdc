"""Built-in cache providers, in registration order."""

from squeaky.providers.browsers import ChromeProvider, FirefoxProvider
from squeaky.providers.build_tools import (
    GoBuildProvider,
    GradleProvider,
    MavenProvider,
    NodeGypProvider,
    NxProvider,
    PlaywrightProvider,
    TurboProvider,
    ViteProvider,
    WebpackProvider,
)
from squeaky.providers.ides import JetBrainsProvider, VSCodeProvider, XcodeProvider
from squeaky.providers.package_managers import (
    BunProvider,
    CargoProvider,
    HomebrewProvider,
    NpmProvider,
    PipProvider,
    PnpmProvider,
    YarnProvider,
)

BUILTIN_PROVIDERS = [
    NpmProvider,
    YarnProvider,
    PnpmProvider,
    BunProvider,
    PipProvider,
    CargoProvider,
    HomebrewProvider,
    GradleProvider,
    MavenProvider,
    GoBuildProvider,
    NodeGypProvider,
    PlaywrightProvider,
    WebpackProvider,
    ViteProvider,
    TurboProvider,
    NxProvider,
    VSCodeProvider,
    JetBrainsProvider,
    XcodeProvider,
    ChromeProvider,
    FirefoxProvider,
]

__all__ = [cls.__name__ for cls in BUILTIN_PROVIDERS] + ["BUILTIN_PROVIDERS"]
