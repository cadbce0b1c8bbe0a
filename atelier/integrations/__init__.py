"""External adapters: Shopify, the Mylerz carrier, WhatsApp Cloud API and Discord."""
