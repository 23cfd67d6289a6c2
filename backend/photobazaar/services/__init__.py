"""
PhotoBazaar Backend: Services Layer
====================================

What:  Business rules between the HTTP routes and the database.
How:   Each service is a stateless singleton. Methods take the request's
       AsyncSession and the acting user, raise PhotoBazaarError subclasses,
       and never commit; the session dependency owns the transaction.

Service Inventory:
    - UserService: registration, email verification, login, profiles,
      featured photographers, dashboards
    - CategoryService: category CRUD (admin) and lookup by id or slug
    - PhotoService: upload, edit, soft delete, detail and per-user lists
    - PhotoQuery: the marketplace filter/sort/paginate builder
    - EngagementService: like toggles and unique view counting
    - PurchaseService: purchases, payment callbacks, counted downloads
    - FileService: image validation, storage and derived copies
    - EmailSender (abstract) with SMTPEmailSender / LoggingEmailSender
"""
