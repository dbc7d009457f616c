"""HTTP routes mirroring the deployed edge functions."""
