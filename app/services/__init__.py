# Services module
#
# Import services from their own modules (app.services.transaction_service, ...);
# schemas import helpers from this package, so nothing is re-exported here.
