"""HTTP trigger surface for asset-vault."""
