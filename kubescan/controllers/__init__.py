"""kopf handlers. Importing a module registers its handlers with kopf."""
