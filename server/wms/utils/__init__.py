from .money import quantize_money, quantize_rate, to_decimal, weighted_average_cost

__all__ = ["quantize_money", "quantize_rate", "to_decimal", "weighted_average_cost"]
