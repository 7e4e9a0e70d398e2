"""
服務層

這個 package 包含純計算邏輯與輔助查詢，不負責狀態轉換：
- ChainService：目標循環的建立與檢查
- NamingService：登入代碼生成
- StateService：state_version 與事件紀錄
- SnapshotService：短輪詢用的遊戲快照
"""
