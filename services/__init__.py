"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- AmountService：定點數金額（18 位小數）解析與格式化
- NamingService：回合 / 下注 ID 生成
- RoundPhaseService：下注時間窗計算
- PayoutService：派彩、安慰獎計算
- HistoryService：回合歷史（有長度上限）
- StatsService：agent 統計
- SettlementService：結算流程編排
- AgentStrategyService：AI agent 下注策略
- RateLimitService：每個 client 的請求上限
"""
