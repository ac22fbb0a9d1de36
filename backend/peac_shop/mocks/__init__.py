"""Mock storefront collaborators."""
