"""
Fallback - URLs served in place of a thumbnail that could not be produced.
"""

import base64
import logging
from dataclasses import dataclass
from typing import List, Optional

from .storage.registry import DiskRegistry

DEFAULT_STATIC_PLACEHOLDER = '/images/no-image.png'


def svg_placeholder(
    width: int = 300,
    height: int = 200,
    background: str = '#f8f9fa',
    text_color: str = '#6c757d',
    text: str = 'No Image'
) -> str:
    """Data URI of a plain SVG box with a centered caption."""
    svg = (
        f'<svg width="{width}" height="{height}" xmlns="http://www.w3.org/2000/svg">'
        f'<rect width="100%" height="100%" fill="{background}"/>'
        f'<text x="50%" y="50%" text-anchor="middle" dy=".3em" fill="{text_color}" '
        f'font-family="Arial">{text}</text>'
        '</svg>'
    )
    return 'data:image/svg+xml;base64,' + base64.b64encode(svg.encode('utf-8')).decode('ascii')


@dataclass(frozen=True)
class FallbackRequest:
    """
    What was being resolved when the failure happened.

    Attributes:
        source_path: Source image path, None if unknown
        source_disk: Source disk name
        width: Target width if the preset could be resolved
        height: Target height if the preset could be resolved
    """
    source_path: Optional[str] = None
    source_disk: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class FallbackPolicy:
    """One step of the fallback chain. Returns a URL or None to pass."""

    def url_for(self, request: FallbackRequest) -> Optional[str]:
        raise NotImplementedError


class StaticPlaceholderPolicy(FallbackPolicy):
    """A configured placeholder URL."""

    def __init__(self, url: Optional[str]):
        self.url = url

    def url_for(self, request: FallbackRequest) -> Optional[str]:
        return self.url or None


class OriginalImagePolicy(FallbackPolicy):
    """The source image itself, when it is still reachable."""

    def __init__(self, disks: DiskRegistry):
        self.disks = disks

    def url_for(self, request: FallbackRequest) -> Optional[str]:
        if not request.source_path or not request.source_disk:
            return None
        disk = self.disks.get(request.source_disk)
        if disk.exists(request.source_path):
            return disk.url(request.source_path)
        return None


class GeneratedPlaceholderPolicy(FallbackPolicy):
    """An SVG placeholder sized like the requested thumbnail."""

    def __init__(self, color: str = '#f8f9fa', text_color: str = '#6c757d'):
        self.color = color
        self.text_color = text_color

    def url_for(self, request: FallbackRequest) -> Optional[str]:
        return svg_placeholder(
            request.width or 300,
            request.height or 200,
            self.color,
            self.text_color,
        )


class StaticPathPolicy(FallbackPolicy):
    """Last resort: a fixed path that is expected to exist on the web server."""

    def __init__(self, path: str = DEFAULT_STATIC_PLACEHOLDER):
        self.path = path

    def url_for(self, request: FallbackRequest) -> Optional[str]:
        return self.path


class FallbackChain:
    """
    Ordered fallback policies; the first URL produced wins.

    A policy that raises is skipped. If nothing produces a URL the
    hard-coded SVG placeholder is returned, so resolve() never fails.
    """

    def __init__(self, policies: List[FallbackPolicy], logger: Optional[logging.Logger] = None):
        self.policies = list(policies)
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings, disks: DiskRegistry, logger: Optional[logging.Logger] = None) -> 'FallbackChain':
        """Build the configured chain: placeholder URL, original, generated, static path."""
        policies: List[FallbackPolicy] = []
        if settings.placeholder_url:
            policies.append(StaticPlaceholderPolicy(settings.placeholder_url))
        if settings.fallback_to_original:
            policies.append(OriginalImagePolicy(disks))
        if settings.generate_placeholders:
            policies.append(GeneratedPlaceholderPolicy(settings.placeholder_color, settings.placeholder_text_color))
        policies.append(StaticPathPolicy(settings.static_placeholder))
        return cls(policies, logger)

    def resolve(self, request: FallbackRequest) -> str:
        for policy in self.policies:
            try:
                url = policy.url_for(request)
            except Exception as e:
                self.logger.debug(f"Fallback {type(policy).__name__} failed: {e}")
                continue
            if url:
                return url
        return svg_placeholder()
