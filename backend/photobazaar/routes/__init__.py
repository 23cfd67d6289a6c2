"""
PhotoBazaar Backend: API Routes Package
========================================

Route Inventory:
    - auth.py:        /api/auth/*         register, login, profile, email codes
    - categories.py:  /api/categories/*   browse (public), manage (admin)
    - photos.py:      /api/photos/*       marketplace, uploads, likes, purchase,
                                          download
    - purchases.py:   /api/purchases/*    purchase history, sales, payment
                                          callback, download
    - users.py:       /api/users/*        featured photographers, profiles,
                                          dashboards
    - files.py:       /uploads/*, /api/downloads/{token}
    - health.py:      /health

Routes stay thin: parse the request, call one service, wrap the result in
the ApiResponse envelope. Business rules live in photobazaar.services.
"""
