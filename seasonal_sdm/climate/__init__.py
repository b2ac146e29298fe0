from .seasonal import SeasonalAggregator, reduce_layers
from .averages import average_all_months, average_monthly, average_seasonal
