"""Discord transport -- gateway client and per-kind routers."""
