"""Sales views."""
from rest_framework import viewsets

from apps.returns.permissions import IsStoreStaffOrAdmin

from .models import Sale
from .serializers import SaleSerializer


class SaleViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only sale lookups, used to find the sale a customer brings back.

    - GET /api/sales/           - list (search by sale number)
    - GET /api/sales/{id}/      - detail with lines
    """
    serializer_class = SaleSerializer
    permission_classes = [IsStoreStaffOrAdmin]
    ordering = ['-sale_date']
    ordering_fields = ['sale_date', 'total_amount', 'sale_number']
    search_fields = ['sale_number']

    def get_queryset(self):
        queryset = Sale.objects.select_related('customer').prefetch_related('lines__medicine')
        user = self.request.user
        if not user.is_superuser:
            queryset = queryset.filter(store_id=user.store_id)
        status = self.request.query_params.get('status')
        if status:
            queryset = queryset.filter(status=status)
        return queryset
