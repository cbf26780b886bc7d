"""
Base authentication handler.

A handler instance serves exactly one request. The hosting pipeline builds a
fresh instance per request, calls ``initialize`` and then drives it through
``authenticate``, ``challenge`` and ``sign_out``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar
from starlette.requests import Request
from starlette.responses import Response

from .contexts import AuthenticateContext, ChallengeContext, SignOutContext
from .encoding import UrlEncoder
from .errors import HandlerNotInitializedError
from .options import AuthenticationOptions
from .ticket import AuthenticationTicket
from oidc_gate.observability.metrics import get_metrics_collector
from oidc_gate.observability.tracing import TracingContext

TOptions = TypeVar("TOptions", bound=AuthenticationOptions)


class AuthenticationHandler(ABC, Generic[TOptions]):
    """Abstract base class for per-request authentication handlers."""

    def __init__(self):
        self._options: Optional[TOptions] = None
        self._request: Optional[Request] = None
        self._logger: Optional[logging.Logger] = None
        self._url_encoder: Optional[UrlEncoder] = None
        self._initialized = False

        self._authenticate_lock = asyncio.Lock()
        self._authenticate_attempted = False
        self._authenticate_result: Optional[AuthenticationTicket] = None
        self._authenticate_error: Optional[BaseException] = None
        self._authenticate_traceback = None

        # Response produced by a challenge, sign-out or handled event
        self.response: Optional[Response] = None

    def initialize(
        self,
        options: TOptions,
        request: Request,
        logger: logging.Logger,
        url_encoder: UrlEncoder,
    ) -> None:
        """
        Bind the handler to its configuration and the current request.

        Args:
            options: Scheme configuration, read-only from here on
            request: The request this instance serves
            logger: Diagnostic sink
            url_encoder: Encoder used when building URLs

        Raises:
            HandlerNotInitializedError: If the handler was already initialized
        """
        if self._initialized:
            raise HandlerNotInitializedError(
                f"{type(self).__name__} is already bound to a request; "
                "construct a new handler per request"
            )
        if options is None:
            raise HandlerNotInitializedError("Handler options are required")

        self._options = options
        self._request = request
        self._logger = logger
        self._url_encoder = url_encoder
        self._initialized = True

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise HandlerNotInitializedError(
                f"{type(self).__name__} used before initialize()"
            )

    @property
    def options(self) -> TOptions:
        self._ensure_initialized()
        return self._options

    @property
    def request(self) -> Request:
        self._ensure_initialized()
        return self._request

    @property
    def logger(self) -> logging.Logger:
        self._ensure_initialized()
        return self._logger

    @property
    def url_encoder(self) -> UrlEncoder:
        self._ensure_initialized()
        return self._url_encoder

    def should_handle_scheme(self, authentication_scheme: Optional[str]) -> bool:
        """
        Decide whether this handler is responsible for a requested scheme.

        An exact, case-sensitive match always wins. Otherwise an automatic
        handler accepts a request that names no scheme (``None`` or ``""``).
        Whitespace is a scheme name, not an absent one.
        """
        options = self.options
        if authentication_scheme == options.authentication_scheme:
            return True
        return options.automatic_authentication and not authentication_scheme

    async def authenticate(self) -> Optional[AuthenticationTicket]:
        """
        Return the authentication outcome for this request.

        The underlying check runs at most once per handler instance. A
        failure is cached too and re-raised on every later call.
        """
        self._ensure_initialized()

        if not self._authenticate_attempted:
            async with self._authenticate_lock:
                if not self._authenticate_attempted:
                    await self._run_authenticate()

        if self._authenticate_error is not None:
            # Reset to the original traceback so repeated re-raises do not grow it
            raise self._authenticate_error.with_traceback(self._authenticate_traceback)
        return self._authenticate_result

    async def _run_authenticate(self) -> None:
        scheme = self._options.authentication_scheme
        metrics = get_metrics_collector()
        span = TracingContext().trace_authenticate(scheme)
        # A cancelled check is not an outcome; the next caller runs it again
        try:
            self._authenticate_result = await self.handle_authenticate()
        except Exception as e:
            self._authenticate_error = e
            self._authenticate_traceback = e.__traceback__
            self._authenticate_attempted = True
            metrics.record_authenticate(scheme, "error")
            raise
        else:
            self._authenticate_attempted = True
            outcome = "success" if self._authenticate_result else "no_result"
            metrics.record_authenticate(scheme, outcome)
        finally:
            span.end()

    async def process_authenticate(self, context: AuthenticateContext) -> bool:
        """
        Answer an authenticate request if this handler owns its scheme.

        Returns:
            True if the context was accepted by this handler
        """
        if not self.should_handle_scheme(context.authentication_scheme):
            return False

        try:
            ticket = await self.authenticate()
        except Exception as e:
            context.failed(e)
            raise

        if ticket is not None:
            context.authenticated(ticket)
        else:
            context.not_authenticated()
        return True

    async def challenge(self, context: ChallengeContext) -> bool:
        """Challenge the user agent if this handler owns the requested scheme."""
        if not self.should_handle_scheme(context.authentication_scheme):
            return False

        span = TracingContext().trace_challenge(context.authentication_scheme)
        try:
            handled = await self.handle_unauthorized(context)
        finally:
            span.end()

        if handled:
            context.accept()
            get_metrics_collector().record_challenge(self.options.authentication_scheme)
        return handled

    async def sign_out(self, context: SignOutContext) -> bool:
        """Sign the user out if this handler owns the requested scheme."""
        if not self.should_handle_scheme(context.authentication_scheme):
            return False

        await self.handle_sign_out(context)
        context.accept()
        if self.response is not None:
            get_metrics_collector().record_sign_out(self.options.authentication_scheme)
        return True

    @abstractmethod
    async def handle_authenticate(self) -> Optional[AuthenticationTicket]:
        """
        Perform the actual authentication check.

        Returns:
            AuthenticationTicket if authenticated, None otherwise
        """
        pass

    async def handle_unauthorized(self, context: ChallengeContext) -> bool:
        """Produce a challenge response. Handlers without one return False."""
        return False

    async def handle_sign_out(self, context: SignOutContext) -> None:
        """Produce a sign-out response. No-op by default."""
        return None
