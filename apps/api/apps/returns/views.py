"""Returns views."""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.core.observability import get_sanitized_logger
from apps.core.observability.tracing import trace_span

from . import services
from .eligibility import load_sale
from .exceptions import ReturnError, ReturnNotFound, ValidationFailed
from .models import Return
from .permissions import IsStoreStaffOrAdmin
from .policy import ReturnPolicy
from .serializers import (
    EligibilityReportSerializer,
    ReturnCreateSerializer,
    ReturnSerializer,
    ReturnUpdateSerializer,
    ReturnValidateSerializer,
    SaleAvailabilitySerializer,
)

logger = get_sanitized_logger(__name__)

LIST_FILTERS = (
    'status', 'return_reason', 'refund_status', 'start_date', 'end_date',
    'search', 'sort_by', 'sort_order',
)


def error_response(error: ReturnError) -> Response:
    """Map a return error onto its payload and HTTP status."""
    logger.warning(
        'Return request refused',
        extra={
            'error_type': error.error_type,
            'status_code': error.status_code,
        }
    )
    return Response(error.as_dict(), status=error.status_code)


class ReturnViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Returns of prior sales.

    Endpoints:
    - GET    /api/returns/                          - list (filters as query params)
    - POST   /api/returns/                          - file a return
    - GET    /api/returns/{id}/                     - detail
    - PATCH  /api/returns/{id}/                     - status / refund / notes update
    - POST   /api/returns/validate/                 - eligibility dry run
    - GET    /api/returns/available-for-return/?sale_id=
    - GET    /api/returns/by-sale/?sale_id=
    - POST   /api/returns/{id}/restore-inventory/   - retry stock restoration

    Returns cannot be deleted.
    """
    serializer_class = ReturnSerializer
    permission_classes = [IsStoreStaffOrAdmin]
    # Filtering and ordering are handled by services.list_returns()
    filter_backends = []

    def get_queryset(self):
        queryset = Return.objects.select_related(
            'store', 'original_sale', 'customer'
        ).prefetch_related('lines__medicine')
        user = self.request.user
        if not user.is_superuser:
            queryset = queryset.filter(store_id=user.store_id)
        return queryset

    def _user_store(self):
        user = self.request.user
        return None if user.is_superuser else user.store

    def _check_sale_scope(self, sale_id):
        """Non-superusers only see sales of their own store."""
        sale = load_sale(sale_id)
        user = self.request.user
        if not user.is_superuser and sale.store_id != user.store_id:
            raise ReturnNotFound(f'Sale {sale_id} not found.', sale_id=str(sale_id))
        return sale

    def _sale_id_param(self, request):
        sale_id = request.query_params.get('sale_id')
        if not sale_id:
            raise ValidationFailed('sale_id query parameter is required.')
        return sale_id

    def list(self, request, *args, **kwargs):
        filters = {name: request.query_params.get(name) for name in LIST_FILTERS}
        try:
            queryset = services.list_returns(self._user_store(), filters)
        except ReturnError as e:
            return error_response(e)

        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        serializer = self.get_serializer(queryset, many=True)
        return Response(serializer.data)

    def create(self, request, *args, **kwargs):
        serializer = ReturnCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            self._check_sale_scope(data['sale_id'])
            return_obj = services.create_return(
                sale_id=data['sale_id'],
                lines=data['lines'],
                return_reason=data['return_reason'],
                refund_method=data['refund_method'],
                restore_inventory=data['restore_inventory'],
                created_by=request.user,
                policy=ReturnPolicy.from_settings(),
                return_reason_details=data['return_reason_details'],
                notes=data['notes'],
                tax_adjustment=data['tax_adjustment'],
                discount_adjustment=data['discount_adjustment'],
            )
        except ReturnError as e:
            return error_response(e)

        output = ReturnSerializer(services.get_return(return_obj.id), context={'request': request}).data
        output['warnings'] = return_obj.warnings
        return Response(output, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        return_obj = self.get_object()
        serializer = ReturnUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        extras = dict(serializer.validated_data)
        new_status = extras.pop('status', None)

        with trace_span('return_update', attributes={
            'return_id': str(return_obj.id),
            'to_status': new_status or '',
        }):
            try:
                updated = services.update_return_status(
                    return_obj.id, new_status=new_status, extras=extras, user=request.user
                )
            except ReturnError as e:
                return error_response(e)

        output = ReturnSerializer(services.get_return(updated.id), context={'request': request})
        return Response(output.data, status=status.HTTP_200_OK)

    @action(detail=False, methods=['post'], url_path='validate')
    def validate(self, request):
        """
        Check a return request without saving anything.

        Returns:
        - 200: eligible, with warnings and the estimated refund subtotal
        - 400/404: the error the real request would get
        """
        serializer = ReturnValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            self._check_sale_scope(data['sale_id'])
            report = services.validate_eligibility(
                data['sale_id'], data['lines'], policy=ReturnPolicy.from_settings()
            )
        except ReturnError as e:
            return error_response(e)

        return Response(EligibilityReportSerializer(report).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=['get'], url_path='available-for-return')
    def available_for_return(self, request):
        try:
            sale_id = self._sale_id_param(request)
            self._check_sale_scope(sale_id)
            availability = services.list_available_for_return(sale_id)
        except ReturnError as e:
            return error_response(e)

        return Response(SaleAvailabilitySerializer(availability).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=['get'], url_path='by-sale')
    def by_sale(self, request):
        try:
            sale_id = self._sale_id_param(request)
            self._check_sale_scope(sale_id)
            returns = services.get_returns_for_sale(sale_id)
        except ReturnError as e:
            return error_response(e)

        serializer = ReturnSerializer(returns, many=True, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'], url_path='restore-inventory')
    def restore_inventory(self, request, pk=None):
        """Retry stock restoration; lines already restored are left alone."""
        return_obj = self.get_object()
        try:
            restored = services.restore_inventory(return_obj.id, user=request.user)
        except ReturnError as e:
            return error_response(e)

        output = ReturnSerializer(services.get_return(restored.id), context={'request': request}).data
        output['restoration_failures'] = restored.restoration_result.failures
        return Response(output, status=status.HTTP_200_OK)
