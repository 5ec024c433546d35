"""
Pricing service package for the access layer.

Prices requests to protected routes and raises the price under sustained
excess demand, in the manner of EIP-1559 base fees. HTTP wiring and payment
verification live in the gateway; this package is called in-process.

Structure:
- app.config: Environment settings and the YAML route-pricing loader.
- app.pricing: Fee controller, rate tracking, threshold pricer, registry.
"""
