"""
Bundler Module - Black Box Interface

Purpose: Produce a whole-app browser bundle for the preview frame
Interface: PluginChain.resolve(), BundleBuilder.build(), get_bundle(), attach()
Hidden: Global bindings, native-package shims, esbuild invocation

Bare imports nobody answers are left to esbuild.
"""

from .builder import BundleBuilder
from .plugins import BundlerPlugin, GlobalBindingPlugin, PluginChain, Resolution, ShimPlugin

__all__ = [
    "BundleBuilder",
    "BundlerPlugin",
    "GlobalBindingPlugin",
    "PluginChain",
    "Resolution",
    "ShimPlugin",
]
