"""
WeatherGuard Edge Data Layer

Cache-aside data services for the WeatherGuard construction platform:
1. Key-value storage with prefix-listed secondary indexes
2. Read-through / write-through access to the WeatherGuard API
3. Project, task and weather-risk analysis services
4. Time-boxed forecast cache
"""

__version__ = "0.1.0"
