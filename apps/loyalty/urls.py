from django.urls import path
from . import views

app_name = 'loyalty'

urlpatterns = [
    # Merchant
    path('vouchers/', views.vouchers, name='vouchers'),

    # Customer
    path('redeem/', views.redeem, name='redeem'),
    path('balance/', views.balance, name='balance'),
    path('redemption-qr/', views.redemption_qr, name='redemption-qr'),

    # Both roles
    path('transactions/', views.transactions, name='transactions'),
]
