"""Outbound delivery of participant packages."""

from __future__ import annotations

from .email import EmailJSSender, EmailSender
from .package import JsonPackageGenerator, OutboundPackage, PackageGenerator
from .storage import HttpPackageUploader, PackageUploader

__all__ = [
    "EmailJSSender",
    "EmailSender",
    "HttpPackageUploader",
    "JsonPackageGenerator",
    "OutboundPackage",
    "PackageGenerator",
    "PackageUploader",
]
