"""
API views for vendor payments.

Provides:
- OnboardingView: Create the vendor's Stripe account and an onboarding link
- AccountView: Account status and payout readiness
- WithdrawalListCreateView: List withdrawals with a summary, request a withdrawal
- CheckoutConfirmView: Confirm a checkout payment attempt

The authenticated user's primary key is the vendor id. Domain errors
are returned as {"error", "error_code"}; processor failures always use
the generic customer-safe message.
"""

from __future__ import annotations

import logging

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from vendor_payments.exceptions import (
    AccountNotProvisionedError,
    AccountNotReadyError,
    InsufficientBalanceError,
    PaymentNotFoundError,
    ProviderError,
)
from vendor_payments.models import PaymentAttempt, VendorPaymentAccount
from vendor_payments.permissions import CanPayForOrder
from vendor_payments.serializers import (
    ConfirmationOutcomeSerializer,
    ConfirmPaymentRequestSerializer,
    ErrorResponseSerializer,
    OnboardingRequestSerializer,
    OnboardingResponseSerializer,
    VendorPaymentAccountSerializer,
    WithdrawalListQuerySerializer,
    WithdrawalListResponseSerializer,
    WithdrawalRequestSerializer,
    WithdrawalSerializer,
    WithdrawalSummarySerializer,
)
from vendor_payments.services import (
    AccountLifecycleService,
    PaymentConfirmationService,
    PayoutLedgerService,
)
from vendor_payments.services.confirmation import GENERIC_PAYMENT_ERROR_MESSAGE

logger = logging.getLogger(__name__)


# =============================================================================
# Error Mapping
# =============================================================================

ERROR_STATUS_CODES: list[tuple[type[BaseApplicationError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AccountNotProvisionedError, status.HTTP_409_CONFLICT),
    (AccountNotReadyError, status.HTTP_409_CONFLICT),
    (InsufficientBalanceError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
]


def error_response(exc: BaseApplicationError) -> Response:
    """Translate a domain exception into an API error response."""
    if isinstance(exc, ProviderError):
        logger.warning(
            "Payment processor error returned to client",
            extra={"error_code": exc.error_code, "reason_code": exc.reason_code},
        )
        return Response(
            {"error": GENERIC_PAYMENT_ERROR_MESSAGE, "error_code": exc.error_code},
            status=status.HTTP_502_BAD_GATEWAY,
        )

    http_status = status.HTTP_400_BAD_REQUEST
    for exc_class, code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_class):
            http_status = code
            break

    return Response(exc.to_dict(), status=http_status)


def _vendor_id(request) -> str:
    return str(request.user.pk)


# =============================================================================
# Account Views
# =============================================================================


class OnboardingView(APIView):
    """
    Start or resume vendor onboarding.

    POST /api/v1/vendor-payments/onboarding/
        Creates the Stripe account on first call (later calls reuse it)
        and returns a fresh single-use onboarding link.

    Response:
        200 OK: Account plus onboarding_url
        400 Bad Request: Validation error
        502 Bad Gateway: Stripe unavailable or refused the request
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="start_vendor_onboarding",
        summary="Start vendor onboarding",
        request=OnboardingRequestSerializer,
        responses={
            200: OpenApiResponse(response=OnboardingResponseSerializer),
            400: OpenApiResponse(response=ErrorResponseSerializer),
            502: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Payment processor error",
            ),
        },
        tags=["Vendor Payments - Accounts"],
    )
    def post(self, request):
        serializer = OnboardingRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        vendor_id = _vendor_id(request)

        service = AccountLifecycleService()
        try:
            service.create_account(
                vendor_id=vendor_id,
                email=data["email"],
                business_name=data["business_name"],
                country=data.get("country"),
                business_type=data["business_type"],
            )
            onboarding_url = service.generate_onboarding_link(
                vendor_id,
                refresh_url=data["refresh_url"],
                return_url=data["return_url"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        account = VendorPaymentAccount.objects.get(vendor_id=vendor_id)
        return Response(
            {
                "account": VendorPaymentAccountSerializer(account).data,
                "onboarding_url": onboarding_url,
            }
        )


class AccountView(APIView):
    """
    Account status for the authenticated vendor.

    GET /api/v1/vendor-payments/account/
    GET /api/v1/vendor-payments/account/?refresh=true
        With refresh, the capability flags are pulled from Stripe first.

    Response:
        200 OK: Account details
        404 Not Found: Vendor has not started onboarding
        409 Conflict: Refresh requested before the account exists at Stripe
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_vendor_payment_account",
        summary="Get payment account status",
        parameters=[
            OpenApiParameter(
                name="refresh",
                type=OpenApiTypes.BOOL,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Re-pull capability flags from Stripe before answering",
            ),
        ],
        responses={
            200: OpenApiResponse(response=VendorPaymentAccountSerializer),
            404: OpenApiResponse(response=ErrorResponseSerializer),
            409: OpenApiResponse(response=ErrorResponseSerializer),
        },
        tags=["Vendor Payments - Accounts"],
    )
    def get(self, request):
        vendor_id = _vendor_id(request)
        refresh = request.query_params.get("refresh", "").lower() in ("1", "true", "yes")

        try:
            if refresh:
                AccountLifecycleService().refresh_account_status(vendor_id)
            account = VendorPaymentAccount.objects.filter(vendor_id=vendor_id).first()
            if account is None:
                raise PaymentNotFoundError(
                    "No payment account for vendor",
                    details={"vendor_id": vendor_id},
                )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(VendorPaymentAccountSerializer(account).data)


# =============================================================================
# Withdrawal Views
# =============================================================================


class WithdrawalListCreateView(APIView):
    """
    Vendor withdrawals.

    GET /api/v1/vendor-payments/withdrawals/?status=processing&page=1&page_size=10
        Paginated withdrawals, PROCESSING first then newest processed,
        plus summary totals.

    POST /api/v1/vendor-payments/withdrawals/
        Request a payout to the vendor's Stripe account.

    Response:
        201 Created: Withdrawal is PROCESSING
        409 Conflict: Account not ready, or another request is in progress
        422 Unprocessable Entity: Insufficient balance
        502 Bad Gateway: Transfer failed; the withdrawal is FAILED
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_vendor_withdrawals",
        summary="List withdrawals",
        parameters=[WithdrawalListQuerySerializer],
        responses={
            200: OpenApiResponse(response=WithdrawalListResponseSerializer),
            400: OpenApiResponse(description="Invalid filter or paging values"),
        },
        tags=["Vendor Payments - Withdrawals"],
    )
    def get(self, request):
        query = WithdrawalListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        vendor_id = _vendor_id(request)

        ledger = PayoutLedgerService()
        try:
            rows, pagination = ledger.list_withdrawals(
                vendor_id,
                status=query.validated_data.get("status"),
                page=query.validated_data["page"],
                page_size=query.validated_data["page_size"],
            )
            summary = ledger.summarize(vendor_id)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            {
                "results": WithdrawalSerializer(rows, many=True).data,
                "pagination": pagination,
                "summary": WithdrawalSummarySerializer(summary).data,
            }
        )

    @extend_schema(
        operation_id="request_vendor_withdrawal",
        summary="Request a withdrawal",
        request=WithdrawalRequestSerializer,
        responses={
            201: OpenApiResponse(response=WithdrawalSerializer),
            400: OpenApiResponse(response=ErrorResponseSerializer),
            409: OpenApiResponse(response=ErrorResponseSerializer),
            422: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Insufficient balance",
            ),
            502: OpenApiResponse(response=ErrorResponseSerializer),
        },
        tags=["Vendor Payments - Withdrawals"],
    )
    def post(self, request):
        serializer = WithdrawalRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            withdrawal = PayoutLedgerService().request_withdrawal(
                _vendor_id(request),
                serializer.validated_data["amount_minor"],
                serializer.validated_data["currency"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(WithdrawalSerializer(withdrawal).data, status=status.HTTP_201_CREATED)


# =============================================================================
# Checkout Views
# =============================================================================


class CheckoutConfirmView(APIView):
    """
    Confirm a checkout payment attempt.

    POST /api/v1/vendor-payments/checkout/{attempt_id}/confirm/

    A confirmation that needs 3-D Secure answers with status
    requires_action and a next_action_url; confirming again after the
    challenge resolves the same attempt.

    Only users the OrderService allows to pay the attempt's order may
    confirm it; others get 403.
    """

    permission_classes = [IsAuthenticated, CanPayForOrder]

    @extend_schema(
        operation_id="confirm_checkout_payment",
        summary="Confirm a payment",
        request=ConfirmPaymentRequestSerializer,
        responses={
            200: OpenApiResponse(response=ConfirmationOutcomeSerializer),
            403: OpenApiResponse(description="Not allowed to pay for this order"),
            404: OpenApiResponse(response=ErrorResponseSerializer),
            409: OpenApiResponse(response=ErrorResponseSerializer),
            502: OpenApiResponse(response=ErrorResponseSerializer),
        },
        tags=["Vendor Payments - Checkout"],
    )
    def post(self, request, attempt_id):
        attempt = PaymentAttempt.objects.only("id", "order_id").filter(pk=attempt_id).first()
        if attempt is None:
            return error_response(
                PaymentNotFoundError(
                    "Payment attempt not found",
                    details={"payment_attempt_id": str(attempt_id)},
                )
            )
        self.check_object_permissions(request, attempt)

        serializer = ConfirmPaymentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            outcome = PaymentConfirmationService().confirm_payment(
                attempt_id,
                return_url=serializer.validated_data["return_url"],
                payment_method=serializer.validated_data.get("payment_method"),
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(ConfirmationOutcomeSerializer(outcome).data)


__all__ = [
    "OnboardingView",
    "AccountView",
    "WithdrawalListCreateView",
    "CheckoutConfirmView",
    "error_response",
]
