from django.contrib import admin

from .models import Wallet, WalletTransaction


class WalletTransactionInline(admin.TabularInline):
    model = WalletTransaction
    fk_name = 'wallet'
    extra = 0
    can_delete = False
    fields = ['transaction_type', 'amount', 'reference_type', 'status', 'balance_after_transaction', 'created_at']
    readonly_fields = fields
    ordering = ['-created_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    """Balances are read-only here; adjust through the admin API so the ledger stays consistent"""
    list_display = ['user', 'balance', 'currency', 'status', 'last_transaction_at']
    list_filter = ['status', 'currency']
    search_fields = ['user__email']
    raw_id_fields = ['user']
    readonly_fields = ['balance', 'version', 'last_transaction_at', 'created_at', 'updated_at']
    inlines = [WalletTransactionInline]


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'user', 'transaction_type', 'amount', 'reference_type',
        'status', 'initiated_by_actor', 'created_at'
    ]
    list_filter = ['transaction_type', 'status', 'reference_type', 'initiated_by_actor']
    search_fields = ['user__email', 'gateway_transaction_id', 'reference_id']
    date_hierarchy = 'created_at'

    def has_change_permission(self, request, obj=None):
        return False
