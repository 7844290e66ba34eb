"""
Fruver 农产品价格数据服务
独立的数据微服务，提供每周批发市场价格及市场分析指标的 HTTP 接口

架构分层：
  数据获取层 (Acquisition)  → 从 Supabase 价格表分页拉取原始数据
  缓存层     (Cache)        → TTL + 并发请求合并 + 持久化快照
  处理层     (Processing)   → 行校验、分组、周/月重采样
  指标层     (Indicators)   → 市场指标计算
  业务层     (Business)     → 决策类业务变量
"""

__version__ = "1.0.0"
