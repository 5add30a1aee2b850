"""
padctl MCP layer: tool surface, response shaping, audit trail, server.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""
