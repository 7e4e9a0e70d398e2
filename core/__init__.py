"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理遊戲階段轉換
- Manager：管理 Game、Participant 與淘汰流程
- Locks：並發控制工具（每場遊戲一把鎖）
"""
