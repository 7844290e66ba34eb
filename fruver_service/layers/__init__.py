"""
数据流分层架构
  Layer 1 – Acquisition : 数据获取（Supabase 价格表 / 目录 RPC）
  Layer 2 – Cache       : TTL 缓存 + 请求合并 + 持久化（内存 / 文件 / Redis）
  Layer 3 – Processing  : 数据校验、分组与重采样
  Layer 4 – Indicators  : 市场指标计算
  Layer 5 – Business    : 业务决策变量
"""
