"""
                        Services Module

Contains the ordering core. Transports and queue backings follow the hybrid
pattern: a Mock/in-memory implementation for development and a real one for
production, chosen by factories from the settings.

Services:
    - catalog / resolver: drink catalog and free-text order matching
    - admin_commands: bartender commands sent over the messaging channels
    - order_queue: pending orders (memory or Redis)
    - stock: durable per-drink stock counters
    - dispatcher / notifications / broadcast: outbound messages and live updates
    - ordering: the order life cycle tying the above together
"""
