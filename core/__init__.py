"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理所有回合狀態轉換
- RoundManager：管理 Round 的生命週期與目前回合指標
- BetLedger：下注帳本（一人一注、彩池總額）
- Locks：並發控制工具（行級鎖 + 樂觀鎖重試）
"""
