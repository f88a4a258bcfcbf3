"""
Connection Diagnostics

Step-by-step check of the path from this process to the database:
DNS resolution of the host, SRV records for ``mongodb+srv`` URIs, and a real
connect through the driver. Each failure comes with troubleshooting hints so
an operator can tell a DNS problem from a firewall or credentials problem.
"""

import asyncio
import logging
import socket
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import dns.asyncresolver
import dns.exception

from config import DatabaseSettings
from connection_management.driver import DatabaseDriver
from connection_management.error_classifier import error_code
from connection_management.mongo_driver import MongoDriver
from utils.uri import extract_hostname, is_srv_uri, redact_uri

logger = logging.getLogger(__name__)


class DiagnosticStatus(str, Enum):
    """
    Overall outcome of a diagnostics run.

    - SUCCESS: host resolved and a connection was established
    - UNAVAILABLE: the host could not be resolved
    - FAILURE: the URI is unusable or the connect attempt failed
    """
    SUCCESS = "success"
    FAILURE = "failure"
    UNAVAILABLE = "unavailable"
    PENDING = "pending"


@dataclass
class DiagnosticStep:
    name: str
    ok: bool
    detail: str


@dataclass
class DiagnosticReport:
    """
    Result of a diagnostics run.

    ``diagnostic_id`` is a correlation id that also appears in the log lines
    of the run.
    """
    diagnostic_id: str
    uri: str
    hostname: Optional[str] = None
    status: DiagnosticStatus = DiagnosticStatus.PENDING
    steps: List[DiagnosticStep] = field(default_factory=list)
    hints: List[str] = field(default_factory=list)
    elapsed_ms: Optional[float] = None
    connect_time_ms: Optional[float] = None
    connection_state: Optional[str] = None

    def add_step(self, name: str, ok: bool, detail: str) -> None:
        self.steps.append(DiagnosticStep(name=name, ok=ok, detail=detail))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


def troubleshooting_hints(error: BaseException) -> List[str]:
    """Map a connect failure to likely causes."""
    name = type(error).__name__
    message = str(error).lower()
    code = error_code(error)

    if "ServerSelection" in name or "server selection" in message:
        return [
            "Check that the database cluster is running and reachable",
            "Verify that this machine's IP address is on the cluster's access list",
            "Check for network restrictions blocking outbound database traffic",
        ]
    if name == "InvalidURI" or "parse" in message:
        return [
            "The connection string format is invalid",
            "Check MONGO_URI for typos",
        ]
    if "authentication failed" in message:
        return [
            "The username or password in the connection string is incorrect",
            "Verify the user exists and has the required permissions",
        ]
    if code == "ECONNREFUSED" or "connection refused" in message:
        return [
            "Nothing accepted the connection at the given host and port",
            "Check that the hostname and port are correct",
            "Verify that no firewall blocks the connection",
        ]
    if code == "ENOTFOUND" or "name or service not known" in message or "nodename nor servname" in message:
        return [
            "The hostname could not be found",
            "Check the local DNS configuration",
            "Verify the hostname in the connection string",
        ]
    return [
        "Verify that the database cluster is operational",
        "Check the network connection",
        "Verify the connection string",
    ]


async def resolve_host(hostname: str) -> List[str]:
    """Resolve a hostname to its addresses through the event loop."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


async def resolve_srv(hostname: str) -> List[str]:
    """Return ``target:port`` of the ``_mongodb._tcp`` SRV records of a host."""
    answer = await dns.asyncresolver.resolve(f"_mongodb._tcp.{hostname}", "SRV")
    return [f"{record.target.to_text(omit_final_dot=True)}:{record.port}" for record in answer]


class ConnectionDiagnostics:
    """
    Runs the diagnostics steps against one database.

    Args:
        settings: Database settings (URI and timeouts)
        driver: Driver used for the connect step; defaults to MongoDriver
        host_resolver: Coroutine resolving a hostname to addresses
        srv_resolver: Coroutine returning the SRV targets of a hostname
    """

    def __init__(
        self,
        settings: DatabaseSettings,
        driver: Optional[DatabaseDriver] = None,
        host_resolver: Callable[[str], Awaitable[List[str]]] = resolve_host,
        srv_resolver: Callable[[str], Awaitable[List[str]]] = resolve_srv,
    ):
        self.settings = settings
        self._driver = driver or MongoDriver()
        self._host_resolver = host_resolver
        self._srv_resolver = srv_resolver

    async def run(self) -> DiagnosticReport:
        report = DiagnosticReport(
            diagnostic_id=f"db-diag-{uuid.uuid4()}",
            uri=redact_uri(self.settings.uri),
        )
        logger.info(f"[{report.diagnostic_id}] Running connection diagnostics for {report.uri}")

        started = time.monotonic()
        await self._run_steps(report)
        report.elapsed_ms = (time.monotonic() - started) * 1000
        return report

    async def _run_steps(self, report: DiagnosticReport) -> None:
        report.hostname = extract_hostname(self.settings.uri)
        if report.hostname is None:
            report.add_step("parse", False, "Could not parse a hostname from the connection string")
            report.hints = troubleshooting_hints(ValueError("could not parse connection string"))
            report.status = DiagnosticStatus.FAILURE
            return

        # Step 1: DNS resolution
        try:
            addresses = await self._host_resolver(report.hostname)
        except OSError as e:
            logger.warning(f"[{report.diagnostic_id}] DNS resolution failed for {report.hostname}: {e}")
            report.add_step("dns", False, f"{error_code(e) or type(e).__name__}: {e}")
            report.hints = [
                "Check the internet connection",
                "Try an alternative DNS server (e.g. 8.8.8.8 or 1.1.1.1)",
                "Check whether the network blocks the database provider's domains",
                "Verify the hostname in the connection string",
            ]
            report.status = DiagnosticStatus.UNAVAILABLE
            return
        report.add_step("dns", True, f"Resolved {report.hostname} to {', '.join(addresses)}")

        # Step 2: SRV records
        if is_srv_uri(self.settings.uri):
            try:
                targets = await self._srv_resolver(report.hostname)
                report.add_step("srv", True, f"{len(targets)} SRV record(s) found")
            except (dns.exception.DNSException, OSError) as e:
                logger.warning(f"[{report.diagnostic_id}] SRV lookup failed: {e}")
                report.add_step("srv", False, f"SRV record resolution failed: {e}")

        # Step 3: connect
        start = time.monotonic()
        try:
            connection = await self._driver.connect(self.settings)
        except Exception as e:
            logger.error(f"[{report.diagnostic_id}] Connection failed: {e}", exc_info=True)
            report.add_step("connect", False, f"{type(e).__name__}: {e}")
            report.hints = troubleshooting_hints(e)
            report.status = DiagnosticStatus.FAILURE
            return

        report.connect_time_ms = (time.monotonic() - start) * 1000
        report.connection_state = connection.state.value
        report.add_step("connect", True, f"Connected in {report.connect_time_ms:.0f}ms")
        await connection.close()

        report.status = DiagnosticStatus.SUCCESS
        logger.info(f"[{report.diagnostic_id}] All diagnostics passed")
